"""Game domain services: deck building, rules, dealing and transactional mutators.

Everything here is imported by HTTP routes and socket handlers; transport
concerns stay out of this package. The only shared state is the database,
and every write goes through ``store.run_transaction``.
"""
