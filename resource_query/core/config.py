from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    RQ_FILTER_PARAMETER: str = "filters"  # empty string -> flat filter input
    RQ_ORDER_PARAMETER: str = "order_by"
    RQ_PAGE_PARAMETER: str = "page"
    RQ_PAGE_SIZE_PARAMETER: str = "per_page"
    RQ_DEFAULT_PAGE_SIZE: int = 10
    RQ_PAGE_SIZES: str = ""  # e.g. "10,25,50" switches to a set-style page size policy
    RQ_IN_DELIMITER: str = ";"

    RQ_CLIENT_TIMEOUT_SECONDS: float = 15.0

    @property
    def filter_parameter(self) -> str | None:
        return self.RQ_FILTER_PARAMETER.strip() or None

    @property
    def page_sizes_list(self) -> List[int]:
        return [int(v.strip()) for v in self.RQ_PAGE_SIZES.split(",") if v.strip()]

    @property
    def default_pagination(self) -> int | List[int] | None:
        sizes = self.page_sizes_list
        if sizes:
            return sizes
        if self.RQ_DEFAULT_PAGE_SIZE <= 0:
            return None
        return self.RQ_DEFAULT_PAGE_SIZE

settings = Settings()
