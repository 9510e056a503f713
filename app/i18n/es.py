# -*- coding: utf-8 -*-
"""Spanish (es) strings."""

LANG = {
    "queue.requested_provider_next": "¡Eres el siguiente en la fila para tu barbero en {shop_name}!",
    "queue.any_provider_almost_up": "¡Ya casi es tu turno en {shop_name}, prepárate!",
}
