"""
Price events.

Receivers (see backend.core.cache_signals) use these to drop cached
project totals. They are also the hook point for anything else that has
to follow prices, such as pushing updates to connected clients.
"""
from django.dispatch import Signal

# Sent after a component's stored sale price changed.
# Arguments: component_id, old_sale_price, new_sale_price
component_price_changed = Signal()

# Sent after a product's stored cost/sale price changed.
# Arguments: product_id, draft_project_ids (projects whose totals follow the price live)
product_price_changed = Signal()

# Sent after a project's line prices were frozen. Arguments: project_id, frozen_count
project_prices_frozen = Signal()

# Sent after a project's line prices were released. Arguments: project_id, unfrozen_count
project_prices_unfrozen = Signal()
