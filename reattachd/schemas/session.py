from pydantic import BaseModel


class SessionCreate(BaseModel):
    name: str
    cwd: str


class InputRequest(BaseModel):
    text: str


class OutputRead(BaseModel):
    output: str
