import uuid

from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from .utils import utc_now_naive

db = SQLAlchemy()

CONTACT_STATUS_NEW = 'new'
CONTACT_STATUS_READ = 'read'
CONTACT_STATUS_ARCHIVED = 'archived'
CONTACT_STATUSES = (
    CONTACT_STATUS_NEW,
    CONTACT_STATUS_READ,
    CONTACT_STATUS_ARCHIVED,
)
CONTACT_STATUS_LABELS = {
    CONTACT_STATUS_NEW: 'New',
    CONTACT_STATUS_READ: 'Read',
    CONTACT_STATUS_ARCHIVED: 'Archived',
}


def new_row_id():
    return uuid.uuid4().hex


def normalize_contact_status(value, default=CONTACT_STATUS_NEW):
    candidate = (value or '').strip().lower()
    if candidate in CONTACT_STATUSES:
        return candidate
    return default


class User(UserMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    created_at = db.Column(db.DateTime, default=utc_now_naive)

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)


class ContentRow:
    """Columns shared by every editable content table."""

    id = db.Column(db.String(32), primary_key=True, default=new_row_id)
    sort_order = db.Column(db.Integer, nullable=False, default=0, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=False, index=True)
    created_at = db.Column(db.DateTime, default=utc_now_naive)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)


class Service(ContentRow, db.Model):
    __tablename__ = 'services'
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)
    icon_url = db.Column(db.String(500))


class CaseStudy(ContentRow, db.Model):
    __tablename__ = 'case_studies'
    title = db.Column(db.String(200), nullable=False)
    short_description = db.Column(db.Text, nullable=False)
    cover_image_url = db.Column(db.String(500))
    link_url = db.Column(db.String(500))


class TeamMember(ContentRow, db.Model):
    __tablename__ = 'team_members'
    name = db.Column(db.String(200), nullable=False)
    role = db.Column(db.String(200), nullable=False)
    avatar_url = db.Column(db.String(500))
    socials_json = db.Column(db.Text)


class Testimonial(ContentRow, db.Model):
    __tablename__ = 'testimonials'
    name = db.Column(db.String(200), nullable=False)
    role_company = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)
    avatar_url = db.Column(db.String(500))
    rating = db.Column(db.Integer)


class WorkingProcess(ContentRow, db.Model):
    __tablename__ = 'working_processes'
    step_no = db.Column(db.Integer, nullable=False, default=1)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)


class ContactSubmission(db.Model):
    __tablename__ = 'contact_submissions'
    id = db.Column(db.String(32), primary_key=True, default=new_row_id)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=CONTACT_STATUS_NEW, index=True)
    created_at = db.Column(db.DateTime, default=utc_now_naive, index=True)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)


TABLE_MODELS = {
    model.__tablename__: model
    for model in (Service, CaseStudy, TeamMember, Testimonial, WorkingProcess, ContactSubmission)
}


def row_to_dict(item):
    return {column.name: getattr(item, column.name) for column in item.__table__.columns}
