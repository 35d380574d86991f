# Services package.
#
# Each module exposes async functions that hold the business rules for one
# aggregate:
#
#   post_service     - listing, CRUD, status changes and like/dislike toggles
#   comment_service  - comments scoped to a post
#   user_service     - registration, login and the caller's profile
#
# Every function takes an AsyncSession first; the router layer owns the
# transaction through the ``get_db`` dependency. Failures are raised as
# ``quickblog.exceptions`` errors, never returned as None.
