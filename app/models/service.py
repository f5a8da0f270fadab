from typing import Optional, Union

from pydantic import BaseModel

Number = Union[int, float]


class ServiceCreate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    base_price: Optional[Number] = None
    category_id: Optional[str] = None
    display_order: Optional[int] = None


class ServiceUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    base_price: Optional[Number] = None
    category_id: Optional[str] = None
    display_order: Optional[int] = None
    is_active: Optional[bool] = None
