from comanda.models.restaurant import Restaurant
from comanda.models.agent_config import AgentConfig
from comanda.models.restaurant_ai_settings import RestaurantAISettings
from comanda.models.menu_category import MenuCategory
from comanda.models.product import Product
from comanda.models.addon import Addon
from comanda.models.message import Message
from comanda.models.processed_message import ProcessedMessage
from comanda.models.conversation_mode import ConversationMode
from comanda.models.conversation_state import ConversationState
from comanda.models.cart import Cart, CartItem, CartItemAddon
from comanda.models.order import Order
from comanda.models.customer import Customer
from comanda.models.customer_insights import CustomerInsights
