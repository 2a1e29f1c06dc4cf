from storefront.models.user import User, UserRole
from storefront.models.product import Product, ProductVariant
from storefront.models.cart import Cart, CartItem
from storefront.models.order import Order, OrderItem, OrderStatus, PaymentStatus, PaymentMethod
from storefront.models.order_status_history import OrderStatusHistory
from storefront.models.review import Review
