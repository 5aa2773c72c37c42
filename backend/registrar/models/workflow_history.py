from sqlalchemy import Column, Integer, Text
from registrar.database import Base


class WorkflowHistory(Base):
    __tablename__ = "workflow_history"

    history_id = Column(Integer, primary_key=True, autoincrement=True)
    request_id = Column(Integer, nullable=False)
    stage = Column(Text, nullable=False)
    action = Column(Text)
    comments = Column(Text)
    processed_by = Column(Integer)
    processed_at = Column(Text, nullable=False)
