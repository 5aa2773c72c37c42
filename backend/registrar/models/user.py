from sqlalchemy import Column, Integer, Text
from registrar.database import Base


class User(Base):
    __tablename__ = "users"

    user_id = Column(Integer, primary_key=True, autoincrement=True)
    student_number = Column(Text)
    first_name = Column(Text, nullable=False, default="")
    last_name = Column(Text, nullable=False, default="")
    email = Column(Text)
    role = Column(Text, nullable=False, default="Student")
