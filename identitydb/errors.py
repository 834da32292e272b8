# identitydb/errors.py
from __future__ import annotations


class IdentityError(Exception):
    """Base class for every error raised by identitydb."""


class ProgramError(IdentityError):
    """The library was used incorrectly (closed handle, bad argument, ...)."""


class NestedAtomicOperationError(IdentityError):
    pass


# ----------------------------
# Sessions
# ----------------------------

class SessionError(IdentityError):
    pass


class InvalidSessionError(SessionError):
    """No session matches the token."""


class ExpiredSessionError(SessionError):
    """The session exists but its lifetime has elapsed."""


class SessionRenewalError(SessionError):
    """Unknown token/renewal token pair, or the renewal window has elapsed."""


# ----------------------------
# Users
# ----------------------------

class UserError(IdentityError):
    pass


class UserExistsError(UserError):
    pass


class UserInvalidError(UserError):
    pass


class UserAuthenticationError(UserError):
    pass


# ----------------------------
# Groups
# ----------------------------

class GroupError(IdentityError):
    pass


class GroupExistsError(GroupError):
    pass


class GroupInvalidError(GroupError):
    pass


class GroupHasMemberError(GroupError):
    pass


class GroupNotAMemberError(GroupError):
    pass
