"""Audit stamping and the audit trail log.

Entities that carry created/updated bookkeeping implement ``Auditable``; the
store functions call :func:`stamp_created` on insert and :func:`stamp_updated`
on update, always with the acting user passed in explicitly.
"""
import logging
from datetime import datetime, timezone

audit_logger = logging.getLogger("audit")


def utcnow():
    # naive UTC, matching what the DateTime columns store
    return datetime.now(timezone.utc).replace(tzinfo=None)


def stamp_created(entity, actor):
    entity.mark_created(actor.login, utcnow())

def stamp_updated(entity, actor):
    entity.mark_updated(actor.login, utcnow())


def audit_recipe_change(recipe_id, action, user_id):
    audit_logger.info(f"Recipe {recipe_id} action: {action} by user: {user_id}")

def audit_product_change(product_id, action, user_id):
    audit_logger.info(f"Product {product_id} action: {action} by user: {user_id}")

def audit_image_change(image_id, action, user_id):
    audit_logger.info(f"Image {image_id} action: {action} by user: {user_id}")

def audit_password_change(user_id, changed_by, reason):
    audit_logger.info(f"Password changed for user: {user_id} by: {changed_by} reason: {reason}")

def audit_unauthorized_access(resource, user_id, action):
    audit_logger.warning(
        f"Unauthorized access attempt - Resource: {resource} User: {user_id} Action: {action}"
    )
