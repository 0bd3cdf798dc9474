"""Experience model.

A placement/internship interview experience submitted by a student.
Moderation lifecycle: pending -> approved | rejected, rejected -> pending
(reopen). Transitions are enforced in services/transitions.py; this model
only stores the result.
"""

import uuid
from datetime import datetime, timezone

from placify.extensions import db
from placify.services.transitions import ExperienceStatus


class Experience(db.Model):
    __tablename__ = "experiences"
    __table_args__ = (
        db.Index("ix_experiences_status_id", "status", "id"),
    )

    KIND = "experience"
    RESOURCE_TYPE = "Experience"

    STATUSES = [s.value for s in ExperienceStatus]
    BRANCHES = ["CSE", "IT", "ECE", "EEE", "MECH", "CIVIL", "Other"]
    POSITION_TYPES = ["Placement", "Internship"]
    DIFFICULTY_LEVELS = ["Easy", "Medium", "Hard"]
    INTERVIEW_TYPES = ["On-Campus", "Off-Campus", "Referral"]
    ROUND_TYPES = ["Aptitude", "Coding", "Technical", "HR", "Group Discussion", "Presentation"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )

    # --- Student ---
    full_name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(254), nullable=True)
    college_name = db.Column(db.String(200), nullable=True)
    branch = db.Column(db.String(20), nullable=True)
    batch_year = db.Column(db.Integer, nullable=True)
    linkedin_url = db.Column(db.String(500), nullable=True)
    is_anonymous = db.Column(db.Boolean, default=False, nullable=False)

    # --- Company ---
    company_name = db.Column(db.String(200), nullable=False)
    job_role = db.Column(db.String(100), nullable=False)
    position_type = db.Column(db.String(20), nullable=False)  # Placement | Internship
    interview_type = db.Column(db.String(20), nullable=True)
    job_location = db.Column(db.String(100), nullable=True)
    ctc = db.Column(db.String(20), nullable=True)  # "6 LPA"

    # --- Interview ---
    number_of_rounds = db.Column(db.Integer, nullable=False)
    round_types = db.Column(db.JSON, default=list, nullable=False)
    difficulty_level = db.Column(db.String(10), nullable=True)  # Easy | Medium | Hard
    overall_experience = db.Column(db.Text, nullable=False)
    rounds = db.Column(db.JSON, default=list, nullable=False)  # [{name, description}]
    interview_date = db.Column(db.Date, nullable=True)

    # --- Questions & preparation ---
    coding_questions = db.Column(db.Text, nullable=True)
    technical_questions = db.Column(db.Text, nullable=True)
    hr_questions = db.Column(db.Text, nullable=True)
    resources_used = db.Column(db.Text, nullable=True)
    tips_for_candidates = db.Column(db.Text, nullable=True)
    mistakes_to_avoid = db.Column(db.Text, nullable=True)

    # --- Moderation ---
    status = db.Column(
        db.String(20), default=ExperienceStatus.PENDING.value, nullable=False
    )
    moderated_by = db.Column(db.String(36), nullable=True)
    moderation_notes = db.Column(db.Text, nullable=True)
    verification_badge = db.Column(db.Boolean, default=False, nullable=False)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    def public_dict(self):
        """Fields already visible to admins, safe for broadcast payloads."""
        return {
            "id": self.id,
            "company": self.company_name,
            "role": self.job_role,
            "status": self.status,
            "verification_badge": bool(self.verification_badge),
        }

    def published_dict(self):
        """What students see once the experience is approved.

        No contact details or moderation internals; anonymous posts hide
        the author's name and LinkedIn profile.
        """
        data = self.to_dict()
        for key in ("moderated_by", "moderation_notes", "rejected_at", "status"):
            data.pop(key)
        if self.is_anonymous:
            data["linkedin_url"] = None
        return data

    def to_dict(self):
        """Full admin view of the record."""
        return {
            "id": self.id,
            "full_name": None if self.is_anonymous else self.full_name,
            "is_anonymous": bool(self.is_anonymous),
            "college_name": self.college_name,
            "branch": self.branch,
            "batch_year": self.batch_year,
            "linkedin_url": self.linkedin_url,
            "company_name": self.company_name,
            "job_role": self.job_role,
            "position_type": self.position_type,
            "interview_type": self.interview_type,
            "job_location": self.job_location,
            "ctc": self.ctc,
            "number_of_rounds": self.number_of_rounds,
            "round_types": list(self.round_types or []),
            "difficulty_level": self.difficulty_level,
            "overall_experience": self.overall_experience,
            "rounds": list(self.rounds or []),
            "coding_questions": self.coding_questions,
            "technical_questions": self.technical_questions,
            "hr_questions": self.hr_questions,
            "resources_used": self.resources_used,
            "tips_for_candidates": self.tips_for_candidates,
            "mistakes_to_avoid": self.mistakes_to_avoid,
            "interview_date": self.interview_date.isoformat() if self.interview_date else None,
            "status": self.status,
            "moderated_by": self.moderated_by,
            "moderation_notes": self.moderation_notes,
            "verification_badge": bool(self.verification_badge),
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "rejected_at": self.rejected_at.isoformat() if self.rejected_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Experience {self.company_name} / {self.job_role} ({self.status})>"
