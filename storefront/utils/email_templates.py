"""HTML bodies for order notification emails.

Every template takes the JSON order snapshot queued by the notification
service, not an ORM object.
"""
from html import escape

from storefront.core.config import settings


def _money(order: dict, amount: float) -> str:
    return f"{order.get('currency', settings.DEFAULT_CURRENCY)} {amount:,.2f}"


def _order_link(order: dict) -> str:
    return f"{settings.FRONTEND_URL}/orders/{order['order_number']}"


def _format_address(address: dict) -> str:
    if not address:
        return "N/A"
    lines = [
        escape(address.get("street") or ""),
        escape(f"{address.get('city', '')}, {address.get('state') or ''} {address.get('zip_code') or ''}".strip()),
        escape(address.get("country") or ""),
    ]
    if address.get("phone"):
        lines.append(f"Phone: {escape(address['phone'])}")
    return "<br>".join(line for line in lines if line)


def _items_table(order: dict) -> str:
    rows = ""
    for item in order.get("items", []):
        rows += f"""
        <tr>
            <td>{escape(item['product_name'])}</td>
            <td>{item['quantity']}</td>
            <td>{_money(order, item['unit_price'])}</td>
            <td>{_money(order, item['subtotal'])}</td>
        </tr>
        """
    return f"""
    <table>
        <thead>
            <tr><th>Item</th><th>Qty</th><th>Price</th><th>Total</th></tr>
        </thead>
        <tbody>{rows}</tbody>
    </table>
    """


def order_confirmation_template(order: dict) -> str:
    """HTML email template for order confirmation"""
    return f"""
    <!DOCTYPE html>
    <html>
    <head>
        <style>
            body {{ font-family: Arial, sans-serif; line-height: 1.6; }}
            .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
            table {{ width: 100%; border-collapse: collapse; margin: 20px 0; }}
            th, td {{ padding: 10px; text-align: left; border-bottom: 1px solid #ddd; }}
            .total {{ font-size: 18px; font-weight: bold; }}
        </style>
    </head>
    <body>
        <div class="container">
            <h2>{escape(settings.EMAILS_FROM_NAME)}: Order Confirmation</h2>
            <p>Thank you for your order! Your order <strong>#{order['order_number']}</strong> has been received.</p>

            {_items_table(order)}

            <table>
                <tr><td>Subtotal:</td><td>{_money(order, order['subtotal'])}</td></tr>
                <tr><td>Tax:</td><td>{_money(order, order['tax_amount'])}</td></tr>
                <tr><td>Shipping:</td><td>{_money(order, order['shipping_cost'])}</td></tr>
                <tr><td>Discount:</td><td>-{_money(order, order['discount_amount'])}</td></tr>
                <tr class="total"><td>Total:</td><td>{_money(order, order['total_amount'])}</td></tr>
            </table>

            <h3>Shipping Address:</h3>
            <p>{_format_address(order.get('shipping_address'))}</p>

            <p>Track your order: <a href="{_order_link(order)}">Click here</a></p>
        </div>
    </body>
    </html>
    """


def order_shipped_template(order: dict) -> str:
    """HTML email template for order shipped update."""
    tracking = order.get("tracking_number")
    tracking_html = f"<p>Tracking Number: <strong>{escape(tracking)}</strong></p>" if tracking else ""
    return f"""
    <!DOCTYPE html>
    <html>
    <body style="font-family: Arial, sans-serif; line-height: 1.6;">
        <h2>Good news!</h2>
        <p>Your order <strong>#{order['order_number']}</strong> has been shipped.</p>
        {tracking_html}
        <p>You can track your order here: <a href="{_order_link(order)}">Track Order</a></p>
    </body>
    </html>
    """


def order_delivered_template(order: dict) -> str:
    """HTML email template for order delivered update."""
    return f"""
    <!DOCTYPE html>
    <html>
    <body style="font-family: Arial, sans-serif; line-height: 1.6;">
        <h2>Order Delivered</h2>
        <p>Your order <strong>#{order['order_number']}</strong> has been delivered.</p>
        <p>We would love to hear what you think. Leave a review from your order page.</p>
    </body>
    </html>
    """


def order_status_update_template(order: dict) -> str:
    return f"""
    <!DOCTYPE html>
    <html>
    <body style="font-family: Arial, sans-serif; line-height: 1.6;">
        <h2>Order Update</h2>
        <p>The status of your order <strong>#{order['order_number']}</strong>
           is now <strong>{escape(order['order_status'])}</strong>.</p>
        <p><a href="{_order_link(order)}">View order</a></p>
    </body>
    </html>
    """
