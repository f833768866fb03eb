# memo_mirror/memo_api/schemas.py
#
# Wire models for the flomo "memo/updated" endpoint.
#
# Imports
from typing import List, Optional
#
# 3rd-party Libraries
from pydantic import BaseModel, ConfigDict, Field
#
#######################################################################################################################
#
# Schemas:

class ApiMemo(BaseModel):
    """One memo as delivered by the API. `content` is HTML."""
    model_config = ConfigDict(extra="ignore")

    slug: str
    content: str = ""
    created_at: str
    updated_at: str
    tags: List[str] = Field(default_factory=list)


class ApiResponse(BaseModel):
    """Envelope of every response. `code` is 0 on success."""
    model_config = ConfigDict(extra="ignore")

    code: int
    message: Optional[str] = None
    data: Optional[List[ApiMemo]] = None

#
# End of schemas.py
#######################################################################################################################
