from pydantic import BaseModel, ConfigDict


class ResourceAllocation(BaseModel):
    """Server, compute, storage and cost estimate derived from HCS and SIDI."""

    model_config = ConfigDict(frozen=True)

    app_servers: int
    web_servers: int
    db_servers: int
    cpu_cores: int
    memory_gb: int
    primary_storage_gb: int
    backup_storage_gb: int
    estimated_cost: int

    @property
    def total_servers(self) -> int:
        return self.app_servers + self.web_servers + self.db_servers


class ComputedMetrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    hcs: float
    sidi: float
    raf: ResourceAllocation
