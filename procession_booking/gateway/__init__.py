"""Payment gateway integration."""
