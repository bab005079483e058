"""
SQLAlchemy model for the RBAC table: one table, partition key + sort key,
generic string attributes shared by every item kind.
"""
from sqlalchemy import String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class RBACItem(Base):
    __tablename__ = "rbac"

    entity_name: Mapped[str] = mapped_column(String(1024), primary_key=True)
    subject_name: Mapped[str] = mapped_column(String(1024), primary_key=True)
    # Attributes; which ones are set depends on the item kind
    resource_name: Mapped[str | None] = mapped_column(String(512), nullable=True)
    scope_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    principal_id: Mapped[str | None] = mapped_column(String(512), nullable=True)

    ATTRIBUTES = ("resource_name", "scope_name", "role_name", "principal_id")

    def to_attributes(self) -> dict[str, str]:
        attributes = {"entity_name": self.entity_name, "subject_name": self.subject_name}
        for name in self.ATTRIBUTES:
            value = getattr(self, name)
            if value is not None:
                attributes[name] = value
        return attributes
