"""
Request and response models for the Zitadel Management API (v1).

Field aliases follow the camelCase JSON used by the API.
"""

from pydantic import BaseModel, Field

from ..constants import ZITADEL_TEXT_QUERY_EQUALS


class Project(BaseModel):
    model_config = {"populate_by_name": True, "extra": "ignore"}

    id: str
    name: str = ""


class ProjectRole(BaseModel):
    model_config = {"populate_by_name": True, "extra": "ignore"}

    key: str
    display_name: str = Field("", alias="displayName")


class OIDCApp(BaseModel):
    """An OIDC application. client_secret is only set on the creation response."""

    model_config = {"populate_by_name": True, "extra": "ignore"}

    id: str
    client_id: str = Field("", alias="clientId")
    client_secret: str = Field("", alias="clientSecret", repr=False)


class OIDCAppConfig(BaseModel):
    """Desired OIDC application configuration, used for create and update."""

    model_config = {"populate_by_name": True}

    name: str
    redirect_uris: list[str] = Field(default_factory=list, alias="redirectUris")
    post_logout_redirect_uris: list[str] = Field(
        default_factory=list, alias="postLogoutRedirectUris"
    )
    response_types: list[str] = Field(default_factory=list, alias="responseTypes")
    grant_types: list[str] = Field(default_factory=list, alias="grantTypes")
    app_type: str = Field("", alias="appType")
    auth_method_type: str = Field("", alias="authMethodType")
    access_token_type: str = Field("", alias="accessTokenType")
    dev_mode: bool = Field(False, alias="devMode")
    id_token_role_assertion: bool = Field(False, alias="idTokenRoleAssertion")
    id_token_userinfo_assertion: bool = Field(False, alias="idTokenUserinfoAssertion")
    access_token_role_assertion: bool = Field(False, alias="accessTokenRoleAssertion")

    def create_payload(self) -> dict:
        return self.model_dump(by_alias=True)

    def update_payload(self) -> dict:
        """The oidc_config update endpoint does not accept the app name."""
        return self.model_dump(by_alias=True, exclude={"name"})


class NameQuery(BaseModel):
    name: str
    method: str = ZITADEL_TEXT_QUERY_EQUALS


class SearchQuery(BaseModel):
    model_config = {"populate_by_name": True}

    name_query: NameQuery = Field(..., alias="nameQuery")


class SearchRequest(BaseModel):
    """Body of the _search endpoints, optionally filtered by exact name."""

    queries: list[SearchQuery] = Field(default_factory=list)

    @classmethod
    def by_name(cls, name: str) -> "SearchRequest":
        return cls(queries=[SearchQuery(name_query=NameQuery(name=name))])

    def payload(self) -> dict:
        return self.model_dump(by_alias=True)


class AppSearchResult(BaseModel):
    model_config = {"populate_by_name": True, "extra": "ignore"}

    id: str
    name: str = ""
    oidc_config: dict = Field(default_factory=dict, alias="oidcConfig")

    def to_app(self) -> OIDCApp:
        return OIDCApp(id=self.id, client_id=self.oidc_config.get("clientId", ""))


class CreateOIDCAppResponse(BaseModel):
    model_config = {"populate_by_name": True, "extra": "ignore"}

    app_id: str = Field(..., alias="appId")
    client_id: str = Field("", alias="clientId")
    client_secret: str = Field("", alias="clientSecret", repr=False)

    def to_app(self) -> OIDCApp:
        return OIDCApp(
            id=self.app_id, client_id=self.client_id, client_secret=self.client_secret
        )
