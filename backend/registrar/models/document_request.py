from sqlalchemy import Column, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship
from registrar.database import Base


class DocumentRequest(Base):
    __tablename__ = "document_requests"

    request_id = Column(Integer, primary_key=True, autoincrement=True)
    queue_number = Column(Text, nullable=False, unique=True)
    user_id = Column(Integer, nullable=False)
    document_type_id = Column(Integer, ForeignKey("document_types.document_type_id"), nullable=False)
    document_type = Column(Text, nullable=False)
    purpose = Column(Text, nullable=False, default="")
    quantity = Column(Integer, nullable=False)
    total_amount = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="Active")
    current_stage = Column(Text, nullable=False)
    payment_status = Column(Text, nullable=False)
    request_date = Column(Text, nullable=False)
    target_release_date = Column(Text)
    completed_date = Column(Text)
    processed_by = Column(Integer)
    processed_date = Column(Text)

    payments = relationship("Payment", back_populates="request", cascade="all, delete-orphan")
