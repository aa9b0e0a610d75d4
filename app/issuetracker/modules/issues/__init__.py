"""
Issues: the core ticket lifecycle.

- Status changes follow the transition table in constants.ALLOWED_STATUS_TRANSITIONS
- New issues get a due date ten business days out unless one is given
- Assignment and status changes notify the people involved
"""
