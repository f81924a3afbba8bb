"""Domain-specific exceptions"""


class LedgerError(Exception):
    """Base exception for ledger domain layer"""

    pass


class InvalidAmount(LedgerError):
    """Amount is non-positive or outside the accepted range"""

    pass


class InsufficientBalance(LedgerError):
    """Requested spend exceeds available balance"""

    def __init__(self, requested, available):
        super().__init__(f"Insufficient available balance: requested {requested}, available {available}")
        self.requested = requested
        self.available = available


class UnsupportedFrequency(LedgerError):
    """Frequency token is not one of daily/weekly/monthly/quarterly/annual"""

    def __init__(self, token):
        super().__init__(f"Unsupported interest frequency: {token!r}")
        self.token = token


class AccountInactive(LedgerError):
    """Mutation attempted on a disabled account"""

    def __init__(self, account_id):
        super().__init__(f"Account {account_id} is inactive")
        self.account_id = account_id


class AccountNotFound(LedgerError):
    """No ledger account with the given id"""

    def __init__(self, account_id):
        super().__init__(f"Account {account_id} not found")
        self.account_id = account_id


class RecordNotFound(LedgerError):
    """Referenced purchase order, payment or risk tier does not exist"""

    pass


class DuplicateReference(LedgerError):
    """Purchase order or payment reference already used on this account"""

    pass


class InvalidStatusTransition(LedgerError):
    """Purchase order or payment cannot move from its current status"""

    def __init__(self, kind: str, current, target):
        super().__init__(f"Cannot move {kind} from {current.value} to {target.value}")
        self.current = current
        self.target = target


class ImmutableRecordError(LedgerError):
    """Append-only audit record was updated or deleted"""

    pass


class PersistenceFailure(LedgerError):
    """Underlying storage transaction was aborted"""

    pass


class RiskTierInUse(LedgerError):
    """Risk tier still assigned to accounts"""

    def __init__(self, tier_id, account_count):
        super().__init__(f"Cannot delete risk tier {tier_id}: {account_count} accounts are using it")
        self.tier_id = tier_id
        self.account_count = account_count
