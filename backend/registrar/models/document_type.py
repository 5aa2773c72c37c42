from sqlalchemy import Boolean, Column, Integer, Text
from registrar.database import Base


class DocumentType(Base):
    __tablename__ = "document_types"

    document_type_id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    description = Column(Text)
    requires_payment = Column(Boolean, nullable=False, default=False)
    amount = Column(Text, nullable=False, default="0.00")
    processing_days = Column(Integer, nullable=False, default=0)
    requires_clearance = Column(Boolean, nullable=False, default=False)
    category = Column(Text, nullable=False, default="")
    is_active = Column(Boolean, nullable=False, default=True)
    created_date = Column(Text, nullable=False)
