from fastapi import Request
from printstore.payments.gateway import RazorpayGateway


def get_gateway(request: Request) -> RazorpayGateway:
    return request.app.state.payment_gateway
