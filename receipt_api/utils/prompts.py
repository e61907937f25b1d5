"""Default prompt templates for LLM extraction.

Keeping prompts in a central location makes it easier to iterate on
their content and ensure consistency across the application.
"""

from __future__ import annotations

from textwrap import dedent


def get_system_prompt() -> str:
    return "You are a receipt data extraction expert. You reply with a single JSON object and nothing else."


def get_default_extraction_prompt(text: str) -> str:
    """Return the prompt used to turn receipt text into structured fields.

    The field names are camelCase because that is what the model is asked
    to emit; ``LLMService.validate_and_transform`` maps them onto
    ``ExtractedReceiptData``.
    """
    instructions = dedent(
        """
        Extract the following information from the receipt text below.
        Return the data in a JSON format with these exact fields:
        {
          "merchantName": "string (name of the company)",
          "date": "string (date of transaction in YYYY-MM-DD format)",
          "totalAmount": "number (total amount paid)",
          "taxAmount": "number (tax amount)",
          "items": [
            {
              "name": "string (item name)",
              "quantity": "number (quantity purchased)",
              "price": "number (price per item)",
              "total": "number (total for this item)"
            }
          ],
          "paymentMethod": "string (payment method used)",
          "receiptNumber": "string (receipt/invoice number if available)"
        }

        Rules:
        1. If a field cannot be found, use null for that field
        2. For dates, convert to YYYY-MM-DD format
        3. For amounts, extract only the number (no currency symbols)
        4. For items, include all items found in the receipt
        5. If multiple items have the same name, combine them and sum their quantities and totals
        6. If tax is not explicitly mentioned, calculate it as the difference between total and sum of items
        7. If payment method is not found, use "Unknown"
        8. If receipt number is not found, use null
        9. Return ONLY the raw JSON object, no markdown formatting, no code blocks, no additional text
        """
    ).strip()
    return f"{instructions}\n\nReceipt text:\n{text}"
