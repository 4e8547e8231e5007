from __future__ import annotations

import api.endpoints as endpoints
from api.client import ApiClient, ApiResult
from api.errors import ValidationError


async def submit_contact(api: ApiClient, name: str, email: str, subject: str, message: str) -> ApiResult:
    fields = {"name": name, "email": email, "subject": subject, "message": message}
    missing = [k for k, v in fields.items() if not v.strip()]
    if missing:
        raise ValidationError(f"Please fill in: {', '.join(missing)}", field=missing[0])
    if "@" not in email:
        raise ValidationError("Please enter a valid email address.", field="email")
    return await api.call(endpoints.submit_contact, name.strip(), email.strip(), subject.strip(), message.strip())
