"""JSON Schema definitions for MCP tools."""

from __future__ import annotations

_STRING_OR_NULL = {"type": ["string", "null"]}
# Decimal amounts are serialised as strings to keep their exact value.
_MONEY = {"type": "string"}

PROCESS_STATUSES = [
    "pending",
    "collectingDocs",
    "sent",
    "underReview",
    "approved",
    "rejected",
    "archived",
]
DOCUMENT_STATUSES = ["pending", "loaded", "approved", "rejected"]
BUDGET_STATUSES = ["draft", "sent", "approved", "rejected", "expired"]
PRIORITIES = ["low", "medium", "high", "urgent"]

TEMPLATE_SCHEMA = {
    "type": "object",
    "properties": {
        "id": {"type": "string"},
        "name": {"type": "string"},
        "authority": {"type": "string"},
        "required_documents": {"type": "array", "items": {"type": "string"}},
        "estimated_days": {"type": "integer"},
        "base_cost": {"type": ["string", "null"]},
        "description": _STRING_OR_NULL,
    },
    "required": ["id", "name", "authority", "required_documents", "estimated_days"],
}

PRICE_SCHEMA = {
    "type": "object",
    "properties": {
        "id": {"type": "string"},
        "service_name": {"type": "string"},
        "price": _MONEY,
        "category": {"type": "string"},
        "authority": _STRING_OR_NULL,
        "template_id": _STRING_OR_NULL,
        "description": _STRING_OR_NULL,
        "active": {"type": "boolean"},
        "created_at": {"type": "string", "format": "date-time"},
        "updated_at": {"type": "string", "format": "date-time"},
    },
    "required": ["id", "service_name", "price", "category", "active"],
}

BUDGET_SCHEMA = {
    "type": "object",
    "properties": {
        "id": {"type": "string"},
        "number": {"type": "string"},
        "client_id": {"type": "string"},
        "template_ids": {"type": "array", "items": {"type": "string"}},
        "items": {"type": "array", "items": {"type": "object"}},
        "subtotal": _MONEY,
        "tax": _MONEY,
        "total": _MONEY,
        "status": {"type": "string", "enum": BUDGET_STATUSES},
        "operation_type": _STRING_OR_NULL,
        "description": _STRING_OR_NULL,
        "created_at": {"type": "string", "format": "date-time"},
        "valid_until": {"type": ["string", "null"], "format": "date-time"},
        "process_ids": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["id", "number", "client_id", "template_ids", "total", "status"],
}

DOCUMENT_SCHEMA = {
    "type": "object",
    "properties": {
        "id": {"type": "string"},
        "name": {"type": "string"},
        "kind": {"type": "string", "enum": ["required", "optional"]},
        "status": {"type": "string", "enum": DOCUMENT_STATUSES},
        "uploaded_at": {"type": ["string", "null"], "format": "date-time"},
        "validated": {"type": "boolean"},
        "document_type": {"type": "string"},
    },
    "required": ["id", "name", "kind", "status"],
}

PROCESS_SCHEMA = {
    "type": "object",
    "properties": {
        "id": {"type": "string"},
        "title": {"type": "string"},
        "description": {"type": "string"},
        "client_id": {"type": "string"},
        "authority_id": {"type": "string"},
        "status": {"type": "string", "enum": PROCESS_STATUSES},
        "created_at": {"type": "string", "format": "date-time"},
        "due_at": {"type": ["string", "null"], "format": "date-time"},
        "documents": {"type": "array", "items": DOCUMENT_SCHEMA},
        "progress": {"type": "integer", "minimum": 0, "maximum": 100},
        "priority": {"type": "string", "enum": PRIORITIES},
        "tags": {"type": "array", "items": {"type": "string"}},
        "cost": _MONEY,
        "template_id": _STRING_OR_NULL,
        "budget_id": _STRING_OR_NULL,
        "billed": {"type": "boolean"},
        "history": {"type": "array", "items": {"type": "object"}},
    },
    "required": ["id", "title", "client_id", "authority_id", "status", "documents", "progress"],
}

NOTIFICATION_SCHEMA = {
    "type": "object",
    "properties": {
        "id": {"type": "string"},
        "source": {"type": "string", "enum": ["pricing", "system"]},
        "kind": {"type": "string"},
        "message": {"type": "string"},
        "created_at": {"type": "string", "format": "date-time"},
        "read": {"type": "boolean"},
    },
    "required": ["id", "source", "kind", "message", "read"],
}

AUTHORITY_MAPPING_SCHEMA = {
    "type": "object",
    "description": "Overrides the configured authority id, keyed by authority name.",
    "additionalProperties": {"type": "string"},
}

LIST_TEMPLATES_INPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "authority": {
            "type": "string",
            "description": "Only return templates of this authority.",
        },
    },
    "additionalProperties": False,
}

LIST_TEMPLATES_OUTPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "templates": {"type": "array", "items": TEMPLATE_SCHEMA},
        "authorities": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["templates", "authorities"],
}

SEARCH_TEMPLATES_INPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "query": {"type": "string", "minLength": 1},
        "limit": {"type": "integer", "minimum": 1, "maximum": 50, "default": 10},
    },
    "required": ["query"],
    "additionalProperties": False,
}

SEARCH_TEMPLATES_OUTPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "query": {"type": "string"},
        "results": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "score": {"type": "number"},
                    "template": TEMPLATE_SCHEMA,
                },
                "required": ["score", "template"],
            },
        },
    },
    "required": ["query", "results"],
}

CREATE_BUDGET_INPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "client_id": {"type": "string", "minLength": 1},
        "template_ids": {
            "type": "array",
            "items": {"type": "string"},
            "minItems": 1,
        },
        "operation_type": {"type": "string"},
        "description": {"type": "string"},
    },
    "required": ["client_id", "template_ids"],
    "additionalProperties": False,
}

BUDGET_OUTPUT_SCHEMA = {
    "type": "object",
    "properties": {"budget": BUDGET_SCHEMA},
    "required": ["budget"],
}

UPDATE_BUDGET_STATUS_INPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "budget_id": {"type": "string"},
        "status": {"type": "string", "enum": BUDGET_STATUSES},
    },
    "required": ["budget_id", "status"],
    "additionalProperties": False,
}

GENERATE_FROM_TEMPLATE_INPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "template_id": {"type": "string"},
        "client_id": {"type": "string", "minLength": 1},
        "title": {"type": "string"},
        "priority": {"type": "string", "enum": PRIORITIES, "default": "medium"},
        "authority_mapping": AUTHORITY_MAPPING_SCHEMA,
    },
    "required": ["template_id", "client_id"],
    "additionalProperties": False,
}

PROCESS_OUTPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "process": PROCESS_SCHEMA,
        "allowed_targets": {
            "type": "array",
            "items": {"type": "string", "enum": PROCESS_STATUSES},
        },
    },
    "required": ["process", "allowed_targets"],
}

GENERATE_FROM_BUDGET_INPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "budget_id": {"type": "string"},
        "authority_mapping": AUTHORITY_MAPPING_SCHEMA,
    },
    "required": ["budget_id"],
    "additionalProperties": False,
}

GENERATE_FROM_BUDGET_OUTPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "budget": BUDGET_SCHEMA,
        "processes": {"type": "array", "items": PROCESS_SCHEMA},
    },
    "required": ["budget", "processes"],
}

TRANSITION_PROCESS_INPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "process_id": {"type": "string"},
        "target": {"type": "string", "enum": PROCESS_STATUSES},
        "author": {"type": "string"},
    },
    "required": ["process_id", "target"],
    "additionalProperties": False,
}

SET_DOCUMENT_STATUS_INPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "process_id": {"type": "string"},
        "document_id": {"type": "string"},
        "status": {"type": "string", "enum": DOCUMENT_STATUSES},
        "author": {"type": "string"},
    },
    "required": ["process_id", "document_id", "status"],
    "additionalProperties": False,
}

SET_DOCUMENT_STATUS_OUTPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "process_id": {"type": "string"},
        "document": DOCUMENT_SCHEMA,
        "progress": {"type": "integer", "minimum": 0, "maximum": 100},
    },
    "required": ["process_id", "document", "progress"],
}

APPLY_PRICE_INCREASE_INPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "percent": {
            "type": ["number", "string"],
            "description": "Non-negative percentage, e.g. 10 for a 10% raise.",
        },
        "category": {"type": "string"},
    },
    "required": ["percent"],
    "additionalProperties": False,
}

APPLY_PRICE_INCREASE_OUTPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "updated": {"type": "array", "items": PRICE_SCHEMA},
        "count": {"type": "integer"},
    },
    "required": ["updated", "count"],
}

UPSERT_PRICE_INPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "id": {"type": "string"},
        "service_name": {"type": "string", "minLength": 1},
        "price": {"type": ["number", "string"]},
        "category": {"type": "string", "minLength": 1},
        "authority": {"type": "string"},
        "template_id": {"type": "string"},
        "description": {"type": "string"},
        "active": {"type": "boolean", "default": True},
    },
    "required": ["service_name", "price", "category"],
    "additionalProperties": False,
}

UPSERT_PRICE_OUTPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "price": PRICE_SCHEMA,
        "notifications": {"type": "array", "items": NOTIFICATION_SCHEMA},
    },
    "required": ["price", "notifications"],
}

LIST_NOTIFICATIONS_INPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "unread_only": {"type": "boolean", "default": False},
        "source": {"type": "string", "enum": ["pricing", "system"]},
    },
    "additionalProperties": False,
}

LIST_NOTIFICATIONS_OUTPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "notifications": {"type": "array", "items": NOTIFICATION_SCHEMA},
        "unread_count": {"type": "integer"},
    },
    "required": ["notifications", "unread_count"],
}

MARK_NOTIFICATION_READ_INPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "notification_id": {
            "type": "string",
            "description": "Notification to mark; omit to mark every notification as read.",
        },
    },
    "additionalProperties": False,
}

MARK_NOTIFICATION_READ_OUTPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "marked": {"type": "integer"},
        "unread_count": {"type": "integer"},
    },
    "required": ["marked", "unread_count"],
}

GET_PROCESS_INPUT_SCHEMA = {
    "type": "object",
    "properties": {"process_id": {"type": "string"}},
    "required": ["process_id"],
    "additionalProperties": False,
}

LIST_PROCESSES_INPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "filters": {
            "type": "array",
            "description": "Filters combined with AND, each selected by its 'field' key "
            "(status, client, authority, priority, created, tags, text).",
            "items": {
                "type": "object",
                "properties": {"field": {"type": "string"}},
                "required": ["field"],
            },
        },
    },
    "additionalProperties": False,
}

LIST_PROCESSES_OUTPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "processes": {"type": "array", "items": PROCESS_SCHEMA},
        "total": {"type": "integer"},
    },
    "required": ["processes", "total"],
}

RECONCILE_PRICING_INPUT_SCHEMA = {
    "type": "object",
    "properties": {},
    "additionalProperties": False,
}

RECONCILE_PRICING_OUTPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "emitted": {"type": "array", "items": NOTIFICATION_SCHEMA},
        "open_gaps": {"type": "integer"},
    },
    "required": ["emitted", "open_gaps"],
}

VALIDATION_STATES = ["pending", "processing", "completed", "failed", "cancelled"]

VALIDATION_TASK_SCHEMA = {
    "type": "object",
    "properties": {
        "id": {"type": "string"},
        "process_id": {"type": "string"},
        "document_id": {"type": "string"},
        "state": {"type": "string", "enum": VALIDATION_STATES},
        "created_at": {"type": "string"},
        "finished_at": _STRING_OR_NULL,
        "result": {
            "type": ["object", "null"],
            "properties": {
                "valid": {"type": "boolean"},
                "confidence": {"type": "number"},
                "observations": {"type": "array", "items": {"type": "string"}},
            },
        },
        "error": _STRING_OR_NULL,
        "retry_of": _STRING_OR_NULL,
    },
    "required": ["id", "process_id", "document_id", "state"],
}

VALIDATE_DOCUMENT_INPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "process_id": {"type": "string"},
        "document_id": {"type": "string"},
    },
    "required": ["process_id", "document_id"],
    "additionalProperties": False,
}

VALIDATION_TASK_INPUT_SCHEMA = {
    "type": "object",
    "properties": {"task_id": {"type": "string"}},
    "required": ["task_id"],
    "additionalProperties": False,
}

VALIDATION_OUTPUT_SCHEMA = {
    "type": "object",
    "properties": {"task": VALIDATION_TASK_SCHEMA},
    "required": ["task"],
}

CANCEL_VALIDATION_OUTPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "cancelled": {"type": "boolean"},
        "task": VALIDATION_TASK_SCHEMA,
    },
    "required": ["cancelled", "task"],
}
