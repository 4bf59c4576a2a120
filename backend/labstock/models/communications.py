from __future__ import annotations

from ..extensions import db
from labstock.time_utils import to_utc_z


class ChatMessage(db.Model):
    """
    Support chat between depots and administrators.

    One conversation per depot: conversation_id = "depot_<depot id>".
    sender_id is the sender's email.
    """
    __tablename__ = "chat_messages"
    __table_args__ = (
        db.Index("ix_chat_messages_conversation_created", "conversation_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sender_id = db.Column(db.String(255), nullable=False)
    sender_name = db.Column(db.String(255), nullable=False)
    conversation_id = db.Column(db.String(64), nullable=False, index=True)
    content = db.Column(db.Text, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "created_at": to_utc_z(self.created_at),
            "sender_id": self.sender_id,
            "sender_name": self.sender_name,
            "conversation_id": self.conversation_id,
            "content": self.content,
        }


class AlertConfiguration(db.Model):
    """
    Expiry alert: notify the listed addresses about products expiring within
    threshold_days. Mail delivery is configured outside this service.
    """
    __tablename__ = "alert_configurations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    alert_type = db.Column(db.String(16), nullable=False, default="expiry")
    threshold_days = db.Column(db.Integer, nullable=False, default=30)
    emails_to_notify = db.Column(db.JSON, nullable=False, default=list)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    last_triggered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "alert_type": self.alert_type,
            "threshold_days": self.threshold_days,
            "emails_to_notify": list(self.emails_to_notify or []),
            "is_active": self.is_active,
            "last_triggered_at": to_utc_z(self.last_triggered_at),
            "created_at": to_utc_z(self.created_at),
        }
