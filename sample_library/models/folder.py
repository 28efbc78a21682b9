from sqlalchemy import JSON, ForeignKey, Index, Integer, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from sample_library.models import Base


class Folder(Base):
    __tablename__ = "folders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    parent_id: Mapped[int | None] = mapped_column(
        ForeignKey("folders.id", ondelete="CASCADE"), nullable=True
    )

    # Segments from the root down to this folder, for display only
    path: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    # NULL parents compare as distinct, so root names need their own partial index
    __table_args__ = (
        UniqueConstraint("name", "parent_id", name="uq_folders_name_parent"),
        Index(
            "uq_folders_root_name",
            "name",
            unique=True,
            postgresql_where=text("parent_id IS NULL"),
            sqlite_where=text("parent_id IS NULL"),
        ),
    )
