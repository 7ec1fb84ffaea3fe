"""Which gateway takes a payment, by method and currency."""

PESAPAL = "pesapal"
FLUTTERWAVE = "flutterwave"

DISPLAY_NAMES = {PESAPAL: "Pesapal", FLUTTERWAVE: "Flutterwave"}

GATEWAY_CURRENCIES = {
    PESAPAL: ("KES", "TZS", "UGX", "USD"),
    FLUTTERWAVE: ("NGN", "USD", "EUR", "GBP", "KES", "GHS", "ZAR", "TZS", "UGX", "RWF"),
}

EAST_AFRICAN_CURRENCIES = ("KES", "TZS", "UGX")
BANK_TRANSFER_CURRENCIES = ("KES", "TZS", "UGX", "NGN", "GHS")

# local card rates are better through Pesapal; everything else goes international
CARD_GATEWAY_BY_CURRENCY = {
    "KES": PESAPAL,
    "TZS": PESAPAL,
    "UGX": PESAPAL,
    "USD": FLUTTERWAVE,
    "EUR": FLUTTERWAVE,
    "GBP": FLUTTERWAVE,
    "NGN": FLUTTERWAVE,
    "GHS": FLUTTERWAVE,
    "ZAR": FLUTTERWAVE,
    "RWF": FLUTTERWAVE,
}


def select_gateway(method: str, currency: str) -> str:
    method = (method or "").upper()
    if method in ("MPESA", "BANK_TRANSFER"):
        return PESAPAL
    if method == "CARD":
        return CARD_GATEWAY_BY_CURRENCY.get((currency or "").upper(), FLUTTERWAVE)
    return FLUTTERWAVE


def is_gateway_supported_currency(gateway: str, currency: str) -> bool:
    return (currency or "").upper() in GATEWAY_CURRENCIES.get((gateway or "").lower(), ())


def display_name(gateway: str) -> str:
    return DISPLAY_NAMES.get(gateway, gateway)


def available_payment_methods(currency: str) -> list[dict]:
    currency = (currency or "").upper()
    methods = []
    if currency in EAST_AFRICAN_CURRENCIES:
        methods.append({
            "method": "MPESA",
            "gateway": PESAPAL,
            "label": "M-Pesa",
            "description": "Pay with M-Pesa mobile money",
        })
    methods.append({
        "method": "CARD",
        "gateway": select_gateway("CARD", currency),
        "label": "Credit/Debit Card",
        "description": "Pay with Visa, Mastercard, or American Express",
    })
    if currency in BANK_TRANSFER_CURRENCIES:
        methods.append({
            "method": "BANK_TRANSFER",
            "gateway": select_gateway("BANK_TRANSFER", currency),
            "label": "Bank Transfer",
            "description": "Pay directly from your bank account",
        })
    return methods
