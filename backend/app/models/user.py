from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class UserProfile(BaseModel):
    """
    用户角色模型：roles 为唯一权威集合，active_role 为当前选择的视角。

    不变量：roles 非空，且 active_role ∈ roles。
    """

    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    country: Optional[str] = None
    institution: Optional[str] = None
    roles: List[str] = Field(default_factory=lambda: ["author"])
    active_role: str = "author"

    @model_validator(mode="after")
    def _active_role_is_held(self) -> "UserProfile":
        if not self.roles:
            raise ValueError("roles must not be empty")
        if self.active_role not in self.roles:
            raise ValueError(f"active_role '{self.active_role}' is not one of {self.roles}")
        return self


class ProfileResponse(UserProfile):
    allowed_actions: List[str] = Field(default_factory=list)


class ActiveRoleSwitch(BaseModel):
    role: str = Field(..., min_length=1)


class RoleUpdateRequest(BaseModel):
    action: Literal["add", "remove", "set"]
    role: Optional[str] = None
    roles: Optional[List[str]] = None


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(None, min_length=1, max_length=100)
    institution: Optional[str] = Field(None, max_length=200)
    country: Optional[str] = Field(None, min_length=2, max_length=2, description="ISO 3166-1 alpha-2")

    @field_validator("full_name", "institution", "country", mode="before")
    @classmethod
    def _blank_to_none(cls, v):
        """允许前端传空字符串：\"\" / \"   \" -> None。"""
        if isinstance(v, str):
            return v.strip() or None
        return v

    @field_validator("country")
    @classmethod
    def _upper_country(cls, v):
        return v.upper() if v else v
