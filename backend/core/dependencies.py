from fastapi import Request
from core.kafka import KafkaBrokerClient
from core.redis import RedisManager
from services.orders import OrderIngressService
from typing import Optional


# Components are built once in the application lifespan and kept on app.state;
# routes receive them through these dependencies instead of module globals.

def get_order_ingress(request: Request) -> OrderIngressService:
    return request.app.state.order_ingress


def get_broker_client(request: Request) -> KafkaBrokerClient:
    return request.app.state.broker


def get_redis_manager(request: Request) -> Optional[RedisManager]:
    return getattr(request.app.state, "redis_manager", None)
