from sqlalchemy import Column, Integer, String
from workforce.database import Base


class Employee(Base):
    # Owned by the employee directory; this service only reads it.
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    role = Column(String, nullable=False, default="staff")  # admin, staff
    status = Column(String, nullable=False, default="active")  # active, inactive
