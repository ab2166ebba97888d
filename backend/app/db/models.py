import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class UserRole(str, enum.Enum):
    ADMIN = "ADMIN"
    EDITOR = "EDITOR"
    VIEWER = "VIEWER"


class WikiNodeType(str, enum.Enum):
    folder = "folder"
    file = "file"


class WikiPermissionAction(str, enum.Enum):
    DETECTED = "DETECTED"
    RESOLVED = "RESOLVED"


class PermissionKind(str, enum.Enum):
    department = "department"
    rank = "rank"
    position = "position"


class DismissedPermissionLogType(str, enum.Enum):
    wiki = "wiki"


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    username: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[UserRole] = mapped_column(Enum(UserRole, name="user_role"), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class WikiNode(Base):
    """Folder or file in the wiki tree.

    ``depth`` is materialized (root = 0) and kept equal to ``parent.depth + 1``
    by every structural mutation. Permission id lists are only stored on
    folders; ``None`` means the list was never set, ``[]`` means explicitly
    empty.
    """

    __tablename__ = "wiki_file_systems"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    type: Mapped[WikiNodeType] = mapped_column(Enum(WikiNodeType, name="wiki_node_type"), nullable=False)
    parent_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("wiki_file_systems.id"))
    depth: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    order: Mapped[int] = mapped_column("order", Integer, nullable=False, default=0)

    title: Mapped[str | None] = mapped_column(String(500))
    content: Mapped[str | None] = mapped_column(Text)
    attachments: Mapped[list | None] = mapped_column(JSONType)

    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    permission_rank_ids: Mapped[list | None] = mapped_column(JSONType)
    permission_position_ids: Mapped[list | None] = mapped_column(JSONType)
    permission_department_ids: Mapped[list | None] = mapped_column(JSONType)

    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id"))
    updated_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    @property
    def is_folder(self) -> bool:
        return self.type == WikiNodeType.folder


class WikiPermissionLog(Base):
    """Audit row for permission drift.

    DETECTED rows are written once per (node, kind, invalid id) while open and
    only their resolution fields change afterwards. Rows reference the node by
    id only so they outlive node deletion.
    """

    __tablename__ = "wiki_permission_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    wiki_file_system_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    action: Mapped[WikiPermissionAction] = mapped_column(
        Enum(WikiPermissionAction, name="wiki_permission_action"), nullable=False
    )
    invalid_kind: Mapped[PermissionKind | None] = mapped_column(Enum(PermissionKind, name="permission_kind"))
    invalid_id: Mapped[str | None] = mapped_column(String(200))
    invalid_departments: Mapped[list | None] = mapped_column(JSONType)
    invalid_rank_ids: Mapped[list | None] = mapped_column(JSONType)
    invalid_position_ids: Mapped[list | None] = mapped_column(JSONType)
    snapshot_permissions: Mapped[dict | None] = mapped_column(JSONType)
    replacements: Mapped[dict | None] = mapped_column(JSONType)
    note: Mapped[str | None] = mapped_column(Text)
    detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    resolved_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )


class DismissedPermissionLog(Base):
    __tablename__ = "dismissed_permission_logs"
    __table_args__ = (
        UniqueConstraint("log_type", "permission_log_id", "dismissed_by", name="uq_dismissed_permission_logs"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    log_type: Mapped[DismissedPermissionLogType] = mapped_column(
        Enum(DismissedPermissionLogType, name="dismissed_permission_log_type"), nullable=False
    )
    permission_log_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    dismissed_by: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    dismissed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)


Index("idx_wiki_file_system_parent_id", WikiNode.parent_id)
Index("idx_wiki_file_system_type", WikiNode.type)
Index("idx_wiki_file_system_depth", WikiNode.depth)
Index("idx_wiki_permission_logs_node", WikiPermissionLog.wiki_file_system_id, WikiPermissionLog.detected_at.desc())
Index(
    "uq_wiki_permission_logs_open_invalid_id",
    WikiPermissionLog.wiki_file_system_id,
    WikiPermissionLog.invalid_kind,
    WikiPermissionLog.invalid_id,
    unique=True,
    postgresql_where=WikiPermissionLog.resolved_at.is_(None),
    sqlite_where=WikiPermissionLog.resolved_at.is_(None),
)
