"""ShopSync — Keystone inventory and pricing synchronization service."""
