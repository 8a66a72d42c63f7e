from models.base_model import Base, BaseModel
from sqlalchemy import Column, String
from sqlalchemy.orm import relationship


class User(BaseModel, Base):
    """
    Account record. refresh_token holds the single live refresh token for the
    user (one session per user); it is replaced on signin/refresh and cleared
    on logout.
    """
    __tablename__ = "users"

    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    refresh_token = Column(String(1024), nullable=True, index=True)

    files = relationship(
        "StoredFile",
        back_populates="owner",
        passive_deletes=True
    )

    @property
    def password(self):
        raise AttributeError("Password: Write-only field")

    def __repr__(self):
        return f"<User {self.email}>"
