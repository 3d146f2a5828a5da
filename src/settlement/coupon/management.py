"""Coupon administration: commands and handler."""

import json
from datetime import datetime

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from settlement.coupon.coupon import Coupon
from settlement.coupon.validator import normalize_code
from settlement.domain import logger, settlement
from settlement.shared.results import capture


@settlement.command(part_of="Coupon")
class CreateCoupon:
    code = String(required=True, max_length=50)
    name = String(required=True, max_length=100)
    description = String(max_length=500)
    coupon_type = String(required=True, max_length=20)
    value = Float(required=True)
    max_discount_amount = Float(default=0.0)
    min_order_amount = Float(default=0.0)
    usage_limit = Integer(default=0)
    user_usage_limit = Integer(default=1)
    starts_at = DateTime(required=True)
    ends_at = DateTime(required=True)
    applicable_service_ids = Text()  # JSON array
    applicable_vendor_ids = Text()  # JSON array
    applicable_user_ids = Text()  # JSON array
    first_order_only = Boolean(default=False)
    created_by = Identifier()


@settlement.command(part_of="Coupon")
class UpdateCoupon:
    code = String(required=True, max_length=50)
    changes = Text(required=True)  # JSON object of field -> new value


@settlement.command(part_of="Coupon")
class SetCouponActive:
    code = String(required=True, max_length=50)
    is_active = Boolean(required=True)


def _ids(raw):
    return json.loads(raw) if raw else []


@settlement.command_handler(part_of=Coupon)
class CouponManagementHandler:
    @handle(CreateCoupon)
    def create_coupon(self, command):
        repo = current_domain.repository_for(Coupon)
        code = normalize_code(command.code)
        if repo._dao.query.filter(code=code).all().items:
            raise ValidationError({"code": [f"Coupon {code} already exists"]})

        coupon = Coupon.create(
            code=code,
            name=command.name,
            description=command.description,
            coupon_type=command.coupon_type,
            value=command.value,
            max_discount_amount=command.max_discount_amount,
            min_order_amount=command.min_order_amount,
            usage_limit=command.usage_limit,
            user_usage_limit=command.user_usage_limit,
            starts_at=command.starts_at,
            ends_at=command.ends_at,
            applicable_service_ids=_ids(command.applicable_service_ids),
            applicable_vendor_ids=_ids(command.applicable_vendor_ids),
            applicable_user_ids=_ids(command.applicable_user_ids),
            first_order_only=command.first_order_only,
            created_by=command.created_by,
        )
        repo.add(coupon)
        logger.info("Coupon created", code=coupon.code, coupon_type=coupon.coupon_type)
        return coupon.code

    @handle(UpdateCoupon)
    def update_coupon(self, command):
        repo = current_domain.repository_for(Coupon)
        coupon = repo.get(normalize_code(command.code))
        coupon.update(**json.loads(command.changes))
        repo.add(coupon)
        return coupon.code

    @handle(SetCouponActive)
    def set_coupon_active(self, command):
        repo = current_domain.repository_for(Coupon)
        coupon = repo.get(normalize_code(command.code))
        coupon.set_active(command.is_active)
        repo.add(coupon)
        logger.info("Coupon status changed", code=coupon.code, is_active=coupon.is_active)
        return coupon.code


def _json_safe(value):
    return value.isoformat() if isinstance(value, datetime) else value


class CouponAdmin:
    """Result-returning facade for coupon administration."""

    def create(self, code, name, coupon_type, value, starts_at, ends_at, **terms):
        for key in ("applicable_service_ids", "applicable_vendor_ids", "applicable_user_ids"):
            if terms.get(key) is not None:
                terms[key] = json.dumps([str(i) for i in terms[key]])

        def run():
            command = CreateCoupon(
                code=code,
                name=name,
                coupon_type=coupon_type,
                value=value,
                starts_at=starts_at,
                ends_at=ends_at,
                **terms,
            )
            return self._load(current_domain.process(command, asynchronous=False))

        return capture(run)

    def update(self, code, **changes):
        def run():
            payload = json.dumps({k: _json_safe(v) for k, v in changes.items()})
            command = UpdateCoupon(code=code, changes=payload)
            return self._load(current_domain.process(command, asynchronous=False))

        return capture(run)

    def set_active(self, code, is_active: bool):
        def run():
            command = SetCouponActive(code=code, is_active=is_active)
            return self._load(current_domain.process(command, asynchronous=False))

        return capture(run)

    def get(self, code):
        return capture(lambda: self._load(code))

    @staticmethod
    def _load(code) -> Coupon:
        return current_domain.repository_for(Coupon).get(normalize_code(code))
