from dataclasses import dataclass


@dataclass
class AppConfig:
    name: str
    secret_key: str
    base_currency: str
    storefront_url: str


@dataclass
class EmailConfig:
    enabled: bool
    smtp_host: str
    smtp_port: int
    smtp_user: str
    smtp_password: str
    sender: str
    operator_cc: str


@dataclass
class WhatsAppConfig:
    enabled: bool
    api_url: str
    phone_number_id: str
    access_token: str
    verify_token: str
    language_code: str


@dataclass
class CommerceConfig:
    ppn_rate: str
    quotation_valid_days: int
    invoice_due_days: int
    low_stock_threshold: int


@dataclass
class LocaleConfig:
    currency_symbol: str
    thousands_separator: str
    decimal_separator: str
    minor_units: int
    utc_offset_hours: int
