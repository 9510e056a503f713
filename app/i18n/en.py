# -*- coding: utf-8 -*-
"""English (en) strings."""

LANG = {
    "queue.requested_provider_next": "You're next in line for your barber at {shop_name}!",
    "queue.any_provider_almost_up": "You're almost up at {shop_name} – get ready!",
}
