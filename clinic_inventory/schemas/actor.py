from pydantic import BaseModel


class Actor(BaseModel):
    """The principal a call is made on behalf of.

    Passed explicitly into every service call that stamps an audit record or
    filters stock by visibility.
    """

    id: str
    name: str = ""
    department: str = ""
    clinic: str = ""
    overall_visibility: bool = False

    model_config = {"frozen": True}
