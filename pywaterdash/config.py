"""Endpoint configuration supplied by the hosting environment."""
import os
from typing import Optional

from pydantic import BaseModel, Field

DEFAULT_EMAIL_DOMAIN = "water-management.com"


class WaterDashConfig(BaseModel):
    """Firebase project settings plus the optional InfluxDB sink."""

    api_key: str = Field(..., description="Web API key of the Firebase project")
    project_id: str = Field(..., description="Firebase/Firestore project ID")
    database_url: str = Field(..., description="Realtime Database URL")
    influxdb_url: Optional[str] = Field(None, description="InfluxDB server URL")
    influxdb_token: Optional[str] = Field(None, description="InfluxDB authentication token")
    influxdb_org: Optional[str] = Field(None, description="InfluxDB organization")
    influxdb_bucket: Optional[str] = Field(None, description="InfluxDB bucket name")
    influxdb_measurement: str = Field("flow_readings", description="InfluxDB measurement name")
    cache_dir: Optional[str] = Field(None, description="Directory for the local sample cache")
    email_domain: str = Field(
        DEFAULT_EMAIL_DOMAIN, description="Domain appended to bare admin usernames"
    )

    @classmethod
    def from_env(cls) -> "WaterDashConfig":
        """Build the configuration from environment variables."""
        api_key = os.getenv("WATERDASH_API_KEY")
        project_id = os.getenv("WATERDASH_PROJECT_ID")
        database_url = os.getenv("WATERDASH_DATABASE_URL")

        if not all([api_key, project_id, database_url]):
            raise ValueError(
                "Missing required settings in environment variables. "
                "Please ensure WATERDASH_API_KEY, WATERDASH_PROJECT_ID "
                "and WATERDASH_DATABASE_URL are set."
            )

        return cls(
            api_key=api_key,
            project_id=project_id,
            database_url=database_url,
            influxdb_url=os.getenv("INFLUXDB_URL"),
            influxdb_token=os.getenv("INFLUXDB_TOKEN"),
            influxdb_org=os.getenv("INFLUXDB_ORG"),
            influxdb_bucket=os.getenv("INFLUXDB_BUCKET"),
            influxdb_measurement=os.getenv("INFLUXDB_MEASUREMENT", "flow_readings"),
            cache_dir=os.getenv("WATERDASH_CACHE_DIR"),
            email_domain=os.getenv("WATERDASH_EMAIL_DOMAIN", DEFAULT_EMAIL_DOMAIN),
        )
