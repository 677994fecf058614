"""
Listing description text for eBay.

The description is the marketplace-specific description if the product
has one, else its general description, else a placeholder. The tenant's
footer is appended exactly once: building from text that already ends
with the footer returns it unchanged.
"""

from marketsync.core.models import Marketplace, Product

PLACEHOLDER_DESCRIPTION = "No description provided."
FOOTER_SEPARATOR = "\n\n"


class DescriptionBuilder:
    """Builds the description body for a product listing."""

    def base_text(self, product: Product, marketplace: Marketplace) -> str:
        text = (
            product.platform_descriptions.get(marketplace)
            or product.description
            or PLACEHOLDER_DESCRIPTION
        )
        return text.strip() or PLACEHOLDER_DESCRIPTION

    def build(self, product: Product, marketplace: Marketplace, footer: str = "") -> str:
        """
        Build the description for ``product`` on ``marketplace``.

        Args:
            product: The catalog record.
            marketplace: Target marketplace (selects the platform description).
            footer: Tenant-configured footer text, appended once.

        Returns:
            Description text.
        """
        return append_footer(self.base_text(product, marketplace), footer)


def append_footer(text: str, footer: str) -> str:
    """Append ``footer`` to ``text`` unless it is already there."""
    footer = (footer or "").strip()
    if not footer:
        return text
    if text.rstrip().endswith(footer):
        return text
    return f"{text.rstrip()}{FOOTER_SEPARATOR}{footer}"
