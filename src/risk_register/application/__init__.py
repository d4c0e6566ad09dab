"""Application layer: commands, queries, their handlers and response DTOs."""

from risk_register.application.commands import (
    BulkChangeStatusCommand,
    BulkDeleteRisksCommand,
    ChangeRiskStatusCommand,
    CreateRiskCommand,
    DeleteRiskCommand,
    UpdateRiskCommand,
)
from risk_register.application.handlers import (
    BulkChangeStatusHandler,
    BulkDeleteRisksHandler,
    ChangeRiskStatusHandler,
    CreateRiskHandler,
    DeleteRiskHandler,
    GetRiskByIdHandler,
    GetRiskStatisticsHandler,
    ListRisksHandler,
    SearchRisksHandler,
    UpdateRiskHandler,
)
from risk_register.application.queries import (
    GetRiskByIdQuery,
    GetRiskStatisticsQuery,
    ListRisksQuery,
    SearchRisksQuery,
)

__all__ = [
    "BulkChangeStatusCommand",
    "BulkChangeStatusHandler",
    "BulkDeleteRisksCommand",
    "BulkDeleteRisksHandler",
    "ChangeRiskStatusCommand",
    "ChangeRiskStatusHandler",
    "CreateRiskCommand",
    "CreateRiskHandler",
    "DeleteRiskCommand",
    "DeleteRiskHandler",
    "GetRiskByIdHandler",
    "GetRiskByIdQuery",
    "GetRiskStatisticsHandler",
    "GetRiskStatisticsQuery",
    "ListRisksHandler",
    "ListRisksQuery",
    "SearchRisksHandler",
    "SearchRisksQuery",
    "UpdateRiskHandler",
    "UpdateRiskCommand",
]
