"""
ClubCal CLI - Command-line interface for the recurrence engine.

Commands:
- start: Run the maintenance daemon until stopped
- run-once: Run a single maintenance cycle and print its statistics
- check: Report series integrity per tenant
- init-db: Create the database tables
- tenants: List and register tenants
"""
