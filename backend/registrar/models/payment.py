from sqlalchemy import Column, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship
from registrar.database import Base


class Payment(Base):
    __tablename__ = "payments"

    payment_id = Column(Integer, primary_key=True, autoincrement=True)
    request_id = Column(Integer, ForeignKey("document_requests.request_id", ondelete="CASCADE"), nullable=False)
    amount = Column(Text, nullable=False)
    payment_method = Column(Text, nullable=False)
    reference_number = Column(Text)
    payment_proof_url = Column(Text)
    status = Column(Text, nullable=False, default="Pending")
    verified_by = Column(Integer)
    verified_date = Column(Text)
    rejection_reason = Column(Text)
    payment_date = Column(Text, nullable=False)
    updated_date = Column(Text)

    request = relationship("DocumentRequest", back_populates="payments")
