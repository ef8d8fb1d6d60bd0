"""
                        Services Module

Business logic of the storefront and back office. Services with an
external counterpart follow the hybrid pattern: a Mock implementation
for development and a real one selected by ENV_MODE.

Services:
    - catalog / addresses / profiles: Read models and the address book
    - checkout / orders / order_status: Order lifecycle
    - promotions / reports / report_export: Back office
    - payment: Simulated payment processor
    - auth: Access token verification (dev tokens or JWT)
"""
