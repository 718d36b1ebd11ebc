"""Share model for ephemeral text/file links."""

from sqlalchemy import BigInteger, Boolean, CheckConstraint, Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from database import Base


class Share(Base):
    """One shared text snippet or file plus its access rules."""

    __tablename__ = "shares"
    __table_args__ = (
        CheckConstraint(
            "(text_content IS NULL) <> (storage_path IS NULL)",
            name="ck_shares_single_payload",
        ),
        CheckConstraint("view_count >= 0", name="ck_shares_view_count_non_negative"),
        CheckConstraint("view_limit IS NULL OR view_limit > 0", name="ck_shares_view_limit_positive"),
    )

    share_id = Column(String(32), primary_key=True)
    owner_id = Column(String, nullable=True, index=True)
    payload_kind = Column(String, nullable=False)  # text, file

    text_content = Column(Text, nullable=True)

    file_name = Column(String, nullable=True)
    storage_path = Column(String, nullable=True)
    cached_file_url = Column(String, nullable=True)
    file_size = Column(BigInteger, nullable=True)
    mime_type = Column(String, nullable=True)

    password_hash = Column(String, nullable=True)
    password_protected = Column(Boolean, nullable=False, default=False)
    one_time_view = Column(Boolean, nullable=False, default=False)
    view_limit = Column(Integer, nullable=True)
    view_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
