from pydantic import BaseModel, ConfigDict

from registrar.workflow import Role


class UserRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    student_number: str | None = None
    first_name: str = ""
    last_name: str = ""
    email: str | None = None
    role: Role = Role.STUDENT

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
