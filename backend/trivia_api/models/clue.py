"""
Source corpus: categories and clues.

Clues are immutable input loaded by an external ingestion job. The integer
id defines the total order the batch generator pages over.
"""

from sqlalchemy import ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from trivia_api.core.database import Base


class Category(Base):
    """A clue category (e.g. "WORLD CAPITALS")."""

    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(Text, nullable=False, unique=True)

    def __repr__(self) -> str:
        return f"<Category id={self.id} title={self.title!r}>"


class Clue(Base):
    """One raw trivia prompt: category, question text, canonical answer."""

    __tablename__ = "clues"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    category_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("categories.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question: Mapped[str] = mapped_column(Text, nullable=False)
    answer: Mapped[str] = mapped_column(Text, nullable=False)

    category: Mapped[Category] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return f"<Clue id={self.id} category_id={self.category_id}>"
