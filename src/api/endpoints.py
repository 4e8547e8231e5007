"""
Request builders for the backend's REST surface.

Each function only describes a call; `ApiClient.call(fn, *args)` performs it.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from api.client import ApiRequest

# ---------------------------
# Auth
# ---------------------------


def login(email: str, password: str) -> ApiRequest:
    return ApiRequest("POST", "/auth/login", json={"email": email, "password": password}, auth=False)


def signup(name: str, email: str, password: str, phone: str = "") -> ApiRequest:
    body = {"name": name, "email": email, "password": password, "role": "customer"}
    if phone:
        body["phone"] = phone
    return ApiRequest("POST", "/auth/signup", json=body, auth=False)


def google_login(credential: str) -> ApiRequest:
    return ApiRequest("POST", "/auth/google", json={"credential": credential, "role": "customer"}, auth=False)


def verify_email(token: str, email: str) -> ApiRequest:
    return ApiRequest("GET", "/auth/verify-email", params={"token": token, "email": email}, auth=False)


def forgot_password(email: str) -> ApiRequest:
    return ApiRequest("POST", "/auth/forgot-password", json={"email": email}, auth=False)


def reset_password(email: str, otp: str, new_password: str) -> ApiRequest:
    return ApiRequest(
        "POST",
        "/auth/reset-password",
        json={"email": email, "otp": otp, "newPassword": new_password},
        auth=False,
    )


def get_profile() -> ApiRequest:
    return ApiRequest("GET", "/auth/profile")


def update_profile(fields: Dict[str, Any]) -> ApiRequest:
    return ApiRequest("PUT", "/auth/profile", json=fields)


def change_password(current_password: str, new_password: str) -> ApiRequest:
    return ApiRequest(
        "PUT",
        "/auth/change-password",
        json={"currentPassword": current_password, "newPassword": new_password},
    )


# ---------------------------
# Shops & products
# ---------------------------


def list_shops(params: Optional[Dict[str, Any]] = None) -> ApiRequest:
    return ApiRequest("GET", "/shops", params=params or {})


def get_shop(shop_id: str) -> ApiRequest:
    return ApiRequest("GET", f"/shops/{quote(shop_id)}")


def products_by_shop(shop_id: str, params: Optional[Dict[str, Any]] = None) -> ApiRequest:
    return ApiRequest("GET", f"/products/shop/{quote(shop_id)}", params=params or {})


def get_product(product_id: str) -> ApiRequest:
    return ApiRequest("GET", f"/products/{quote(product_id)}")


def search_products(query: str, limit: int = 50) -> ApiRequest:
    return ApiRequest("GET", "/products/search", params={"q": query, "limit": limit})


def product_index(limit: int = 20000) -> ApiRequest:
    return ApiRequest("GET", "/products/index", params={"limit": limit})


# ---------------------------
# Orders
# ---------------------------


def create_order(
    shop_id: str,
    items: List[Dict[str, Any]],
    delivery_address: Dict[str, Any],
    payment_method: str = "cash",
    confirm_duplicate: bool = False,
) -> ApiRequest:
    return ApiRequest(
        "POST",
        "/orders",
        json={
            "shopId": shop_id,
            "items": items,
            "deliveryAddress": delivery_address,
            "paymentMethod": payment_method,
            "confirmDuplicate": confirm_duplicate,
        },
    )


def customer_orders(params: Optional[Dict[str, Any]] = None) -> ApiRequest:
    return ApiRequest("GET", "/orders/customer", params=params or {})


def get_order(order_id: str) -> ApiRequest:
    return ApiRequest("GET", f"/orders/{quote(order_id)}")


def cancel_order(order_id: str, reason: str = "Cancelled by customer") -> ApiRequest:
    return ApiRequest("PUT", f"/orders/{quote(order_id)}/cancel", json={"reason": reason})


def approve_revision(order_id: str) -> ApiRequest:
    return ApiRequest("POST", f"/orders/{quote(order_id)}/approve-revision")


def approve_bill(order_id: str) -> ApiRequest:
    return ApiRequest("PUT", f"/orders/{quote(order_id)}/approve-bill")


def reject_bill(order_id: str, reason: str) -> ApiRequest:
    return ApiRequest("PUT", f"/orders/{quote(order_id)}/reject-bill", json={"reason": reason})


def confirm_payment(order_id: str, transaction_id: str) -> ApiRequest:
    return ApiRequest(
        "POST",
        "/orders/confirm-payment",
        json={"orderId": order_id, "transactionId": transaction_id},
    )


def track_inquiry(order_id: str, method: str) -> ApiRequest:
    return ApiRequest(
        "POST",
        f"/orders/{quote(order_id)}/inquiry",
        json={"method": method, "timestamp": datetime.now(timezone.utc).isoformat()},
    )


def rate_order(order_id: str, rating: int, review: str = "") -> ApiRequest:
    return ApiRequest("PUT", f"/orders/{quote(order_id)}/rate", json={"rating": rating, "review": review})


# ---------------------------
# Delivery, notices, terms, contact
# ---------------------------


def calculate_delivery_fee(shop_id: str, lat: float, lng: float, order_value: float = 0) -> ApiRequest:
    return ApiRequest(
        "POST",
        "/delivery/calculate-fee",
        json={"shopId": shop_id, "deliveryLocation": {"lat": lat, "lng": lng}, "orderValue": order_value},
    )


def active_notices() -> ApiRequest:
    return ApiRequest("GET", "/notices/active")


def mark_notice_viewed(notice_id: str) -> ApiRequest:
    return ApiRequest("POST", f"/notices/{quote(notice_id)}/view")


def current_terms() -> ApiRequest:
    return ApiRequest("GET", "/terms/current")


def accept_terms(terms_id: str) -> ApiRequest:
    return ApiRequest("POST", "/terms/accept", json={"termsId": terms_id})


def submit_contact(name: str, email: str, subject: str, message: str) -> ApiRequest:
    return ApiRequest(
        "POST",
        "/contact",
        json={"name": name, "email": email, "subject": subject, "message": message},
        auth=False,
    )
