# directory/models.py
# Read-only roster mirrored from the contractor/investor directory.
from datetime import datetime
from extensions import db
from sqlalchemy import Numeric


class Investor(db.Model):
    __tablename__ = "investors"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120), nullable=True)
    investor_type = db.Column(db.String(40), nullable=True)   # individual | institutional | family_office
    status = db.Column(db.String(20), default="active")
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def summary(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "investor_type": self.investor_type,
        }


class Project(db.Model):
    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    project_name = db.Column(db.String(160), nullable=False)
    location = db.Column(db.String(160), nullable=True)
    contractor_id = db.Column(db.Integer, db.ForeignKey("contractors.id"), nullable=True, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class Contractor(db.Model):
    __tablename__ = "contractors"

    id = db.Column(db.Integer, primary_key=True)
    company_name = db.Column(db.String(160), nullable=False)
    contact_person = db.Column(db.String(120), nullable=True)
    email = db.Column(db.String(120), nullable=True)

    # fee schedule, NULL -> configured default
    platform_fee_rate = db.Column(Numeric(8, 6), nullable=True)             # e.g. 0.0025
    platform_fee_cap = db.Column(Numeric(18, 2), nullable=True)             # e.g. 25000
    participation_fee_rate_daily = db.Column(Numeric(8, 6), nullable=True)  # e.g. 0.001

    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class Vendor(db.Model):
    __tablename__ = "vendors"

    id = db.Column(db.Integer, primary_key=True)
    company_name = db.Column(db.String(160), nullable=False)
    contact_person = db.Column(db.String(120), nullable=True)
    email = db.Column(db.String(120), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def summary(self):
        return {
            "id": self.id,
            "company_name": self.company_name,
            "contact_person": self.contact_person,
            "email": self.email,
            "phone": self.phone,
        }
