"""
Shapes of the PayPal REST responses and webhook events the service reads.

Every ``from_json`` checks the fields we depend on and raises
UpstreamError when PayPal sends something unexpected.
"""
import json
from dataclasses import dataclass, field
from typing import Optional

from .errors import UpstreamError


def _require(data, key, what):
    if not isinstance(data, dict):
        raise UpstreamError(f"Unexpected {what} response from PayPal", details=data)
    value = data.get(key)
    if value in (None, ''):
        raise UpstreamError(f"PayPal {what} response is missing '{key}'", details=data)
    return value


@dataclass
class AccessToken:
    access_token: str
    token_type: str = 'Bearer'
    expires_in: Optional[int] = None

    @classmethod
    def from_json(cls, data):
        return cls(
            access_token=_require(data, 'access_token', 'OAuth token'),
            token_type=data.get('token_type', 'Bearer'),
            expires_in=data.get('expires_in'),
        )


@dataclass
class Link:
    href: str
    rel: str
    method: Optional[str] = None


@dataclass
class PayPalResource:
    """Product, billing plan, order or subscription as returned on creation"""
    id: str
    status: Optional[str] = None
    links: list = field(default_factory=list)
    raw: dict = field(default_factory=dict, repr=False)

    @classmethod
    def from_json(cls, data, what='resource'):
        resource_id = _require(data, 'id', what)
        links = []
        for link in data.get('links') or []:
            if isinstance(link, dict) and link.get('href') and link.get('rel'):
                links.append(Link(href=link['href'], rel=link['rel'], method=link.get('method')))
        return cls(id=resource_id, status=data.get('status'), links=links, raw=data)

    @property
    def approval_url(self):
        """The HATEOAS 'approve' link, or None"""
        for link in self.links:
            if link.rel == 'approve':
                return link.href
        return None


@dataclass
class WebhookVerification:
    verification_status: str

    @classmethod
    def from_json(cls, data):
        return cls(verification_status=_require(data, 'verification_status', 'webhook verification'))

    @property
    def is_success(self):
        return self.verification_status == 'SUCCESS'


@dataclass
class PayPalErrorBody:
    """Structured error body PayPal sends with 4xx/5xx"""
    name: Optional[str] = None
    message: Optional[str] = None
    details: list = field(default_factory=list)

    @classmethod
    def parse(cls, text):
        """Returns None when the body is not a PayPal error document"""
        try:
            data = json.loads(text)
        except (TypeError, ValueError):
            return None
        if not isinstance(data, dict):
            return None
        details = data.get('details')
        return cls(
            name=data.get('name'),
            message=data.get('message'),
            details=details if isinstance(details, list) else [],
        )

    def describe(self):
        """Best human-readable summary, or None when nothing usable is present"""
        if self.details and isinstance(self.details[0], dict):
            detail = self.details[0]
            issue = detail.get('issue') or self.message
            description = detail.get('description') or ''
            return f"PayPal Error: {issue}. {description}".rstrip()
        if self.message:
            return f"PayPal Error: {self.message}"
        return None


def describe_paypal_error(text):
    """Turn a PayPal error response body into a message, never raising"""
    body = PayPalErrorBody.parse(text)
    message = body.describe() if body else None
    return message or f"PayPal Error: {text}"


@dataclass
class WebhookEvent:
    """Inbound PayPal webhook notification"""
    id: Optional[str]
    event_type: str
    resource: dict = field(default_factory=dict)
    raw: dict = field(default_factory=dict, repr=False)

    @classmethod
    def from_json(cls, data):
        if not isinstance(data, dict):
            raise ValueError("Webhook body must be a JSON object")
        event_type = data.get('event_type')
        if not event_type:
            raise ValueError("Webhook body is missing 'event_type'")
        resource = data.get('resource')
        return cls(
            id=data.get('id'),
            event_type=event_type,
            resource=resource if isinstance(resource, dict) else {},
            raw=data,
        )

    @property
    def resource_id(self):
        return self.resource.get('id')

    @property
    def billing_agreement_id(self):
        return self.resource.get('billing_agreement_id')

    @property
    def order_id(self):
        """Order a capture belongs to, falling back to the resource id"""
        related = (self.resource.get('supplementary_data') or {}).get('related_ids') or {}
        return related.get('order_id') or self.resource_id

    @property
    def next_billing_time(self):
        return (self.resource.get('billing_info') or {}).get('next_billing_time')
