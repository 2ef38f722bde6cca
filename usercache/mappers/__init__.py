# Mappers package.
#
# Record-store access for each table, one module per aggregate:
#
#   user_mapper  - primary-key lookup, scan, keyword search, insert,
#                  update, delete and count for User
#
# Mapper functions take the caller's AsyncSession as their first argument
# and flush but never commit; the service layer owns the transaction.
