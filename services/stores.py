from abc import ABC, abstractmethod


class DataFetchError(Exception):
    """Raised when a group, expense or user lookup fails"""
    pass


class GroupNotFoundError(DataFetchError):
    """Raised when a group is not found"""
    pass


class GroupStore(ABC):
    @abstractmethod
    def list_groups_for_user(self, user_id): pass
    @abstractmethod
    def get_group(self, group_id): pass


class ExpenseStore(ABC):
    @abstractmethod
    def list_expenses(self, group_id): pass


class UserDirectory(ABC):
    @abstractmethod
    def resolve(self, user_ids): pass
