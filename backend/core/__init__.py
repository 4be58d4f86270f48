"""
Biodata payment and document core
"""
from .app_user_id import (
    compose_app_user_id,
    parse_app_user_id,
    InvalidAppUserIdError
)

from .state_machine import (
    PaymentStatus,
    StateMachine,
    InvalidTransitionError,
    payment_state_machine
)

from .duplicate_protection import (
    DuplicateTransactionProtection,
    DuplicateTransactionError
)

from .biodata_store import (
    BiodataStore,
    InvalidRecordIdError
)

from .reconciliation import (
    PaymentReconciliationService,
    ReconciliationConfig,
    ReconciliationOutcome,
    WebhookStatus,
    decide_confirmation
)

from .biodata_templates import (
    get_template,
    list_templates,
    InvalidTemplateError
)

__all__ = [
    # Identity
    'compose_app_user_id',
    'parse_app_user_id',
    'InvalidAppUserIdError',

    # State Machine
    'PaymentStatus',
    'StateMachine',
    'InvalidTransitionError',
    'payment_state_machine',

    # Duplicate Protection
    'DuplicateTransactionProtection',
    'DuplicateTransactionError',

    # Storage
    'BiodataStore',
    'InvalidRecordIdError',

    # Reconciliation
    'PaymentReconciliationService',
    'ReconciliationConfig',
    'ReconciliationOutcome',
    'WebhookStatus',
    'decide_confirmation',

    # Templates
    'get_template',
    'list_templates',
    'InvalidTemplateError',
]
