from .auth import User, SessionToken
from .ledger import InitialBalance, LedgerEntry
from .shifts import Shift, Expense, CardVoucher, BankTransfer, Deposit
from .sales import Doctor, Sale, SaleLine, CommissionPayment
from .reports import IncomeStatementConcept

__all__ = [
    'User', 'SessionToken',
    'InitialBalance', 'LedgerEntry',
    'Shift', 'Expense', 'CardVoucher', 'BankTransfer', 'Deposit',
    'Doctor', 'Sale', 'SaleLine', 'CommissionPayment',
    'IncomeStatementConcept',
]
