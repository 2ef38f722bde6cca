# Services package.
#
# Each module exposes a focused set of async functions that put a cache
# policy in front of a mapper for a single domain aggregate:
#
#   user_service  - read-through / write-invalidate cache for User
#
# All service functions accept an AsyncSession as their first argument and
# scope their own store transaction, so cache invalidation only ever
# follows a committed write.
