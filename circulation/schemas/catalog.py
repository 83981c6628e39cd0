from pydantic import BaseModel

from circulation.db.models import CatalogStatus


class StatusUpdate(BaseModel):
    status: CatalogStatus


class ContainerStatusResponse(BaseModel):
    id: str
    kind: str
    status: CatalogStatus


class LocationResponse(BaseModel):
    id: str
    section_code: str
    aisle_code: str
    shelf_number: str
    status: CatalogStatus

    model_config = {"from_attributes": True}
