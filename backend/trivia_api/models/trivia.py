"""
TriviaQuestion model: the multiple-choice artifact derived from a Clue.

Design notes:
  • clue_id is indexed but NOT unique. The batch generator skips clues that
    already have a question unless run with --force, which adds a new row.
  • Rows are never updated after creation.
  • Answer options are stored unshuffled; order is randomized per response.
"""

import datetime

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.sql import func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from trivia_api.core.database import Base
from trivia_api.models.clue import Clue


class TriviaQuestion(Base):
    """Generated multiple-choice question for one clue."""

    __tablename__ = "trivia_questions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    clue_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("clues.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    rephrased: Mapped[str] = mapped_column(Text, nullable=False)
    correct_answer: Mapped[str] = mapped_column(Text, nullable=False)
    wrong_answer_1: Mapped[str] = mapped_column(Text, nullable=False)
    wrong_answer_2: Mapped[str] = mapped_column(Text, nullable=False)
    wrong_answer_3: Mapped[str] = mapped_column(Text, nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    clue: Mapped[Clue] = relationship(lazy="joined")

    @property
    def wrong_answers(self) -> list[str]:
        return [self.wrong_answer_1, self.wrong_answer_2, self.wrong_answer_3]

    def __repr__(self) -> str:
        return f"<TriviaQuestion id={self.id} clue_id={self.clue_id} model={self.model}>"
