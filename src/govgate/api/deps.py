from __future__ import annotations

from fastapi import Request

from govgate.gateway import GovernanceGateway


def get_gateway(request: Request) -> GovernanceGateway:
    return request.app.state.gateway
