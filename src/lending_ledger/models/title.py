"""
Title model for the Lending Ledger.

A Title is one catalog entry: a book with a number of physical copies. The
inventory store owns it; the lending coordinator is the only component that
moves ``available_copies`` during borrow and return.

Invariant: ``0 <= available_copies <= total_copies`` for every instance,
whether freshly built, loaded from storage, or mutated on assignment.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def normalize_isbn(isbn: str) -> str:
    """Strip hyphens and surrounding whitespace from an ISBN."""
    return isbn.strip().replace("-", "")


class Title(BaseModel):
    """
    Represents one catalog entry with its copy counts.

    ``id`` is None until the inventory store has persisted the title.
    ``version`` is the optimistic concurrency token checked by every save.
    """

    id: int | None = Field(
        default=None,
        description="Internal identifier, used as the ledger foreign key",
        ge=1,
    )

    isbn: str = Field(
        ...,
        description="External identifier (ISBN-10 or ISBN-13, hyphens allowed)",
        examples=["978-0-134-68547-9", "9780134685479"],
    )

    name: str = Field(
        ...,
        description="The title of the book",
        min_length=1,
        max_length=500,
        examples=["The Great Gatsby"],
    )

    author: str | None = Field(
        default=None,
        description="Author display name",
        max_length=200,
    )

    genre: str | None = Field(
        default=None,
        description="Literary genre or category",
        max_length=100,
    )

    publication_year: int | None = Field(
        default=None,
        description="Year the book was published",
        ge=1450,
    )

    total_copies: int = Field(
        ...,
        description="Total number of copies owned",
        ge=0,
    )

    available_copies: int = Field(
        ...,
        description="Copies currently on the shelf",
        ge=0,
    )

    version: int = Field(
        default=0,
        description="Incremented by the inventory store on every successful save",
        ge=0,
    )

    @field_validator("isbn")
    @classmethod
    def validate_isbn(cls, v: str) -> str:
        normalized = normalize_isbn(v)
        if len(normalized) not in (10, 13):
            raise ValueError("ISBN must have 10 or 13 characters once hyphens are removed")
        if not normalized[:-1].isdigit() or not (
            normalized[-1].isdigit() or (len(normalized) == 10 and normalized[-1] in "Xx")
        ):
            raise ValueError("ISBN must be numeric (ISBN-10 may end in X)")
        return normalized.upper()

    @model_validator(mode="after")
    def validate_copies(self) -> "Title":
        """Ensure available copies never exceed total copies."""
        if self.available_copies > self.total_copies:
            raise ValueError(
                f"Available copies ({self.available_copies}) cannot exceed "
                f"total copies ({self.total_copies})"
            )
        return self

    @property
    def copies_on_loan(self) -> int:
        """Number of copies currently checked out."""
        return self.total_copies - self.available_copies

    @property
    def is_available(self) -> bool:
        """Check if at least one copy can be borrowed."""
        return self.available_copies > 0

    @property
    def is_fully_stocked(self) -> bool:
        """No copy is out on loan, so the title may be removed from the catalog."""
        return self.available_copies == self.total_copies

    def with_changes(self, **changes) -> "Title":
        """Return a validated copy with ``changes`` applied; ``self`` is untouched."""
        return Title.model_validate({**self.model_dump(), **changes})

    model_config = ConfigDict(
        validate_assignment=True,
        populate_by_name=True,
        validate_default=True,
        from_attributes=True,
        json_schema_extra={
            "example": {
                "id": 1,
                "isbn": "9780134685479",
                "name": "Effective Java",
                "author": "Joshua Bloch",
                "total_copies": 3,
                "available_copies": 2,
                "version": 4,
            }
        },
    )
