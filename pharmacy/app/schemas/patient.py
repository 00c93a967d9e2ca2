from pydantic import BaseModel


class PatientRead(BaseModel):
    id: int
    patient_code: str
    name: str
    contact_number: str | None
    email: str | None

    class Config:
        from_attributes = True
