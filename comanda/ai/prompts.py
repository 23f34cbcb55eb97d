from __future__ import annotations

from comanda.ai.context import ConversationContext
from comanda.fsm import states

TONE_INSTRUCTIONS = {
    "friendly": "Fale de forma simpática e próxima, com frases curtas.",
    "formal": "Use um tom formal e educado, tratando o cliente por 'o senhor' ou 'a senhora'.",
    "playful": "Seja descontraído e bem-humorado, pode usar emojis com moderação.",
    "professional": "Seja objetivo e profissional, sem rodeios.",
}

UPSELL_INSTRUCTIONS = {
    "low": "Não ofereça itens extras a menos que o cliente pergunte.",
    "medium": "Sugira no máximo um complemento relevante por pedido.",
    "high": "Sempre sugira bebidas, sobremesas ou extras que combinem com o pedido.",
}

STATE_GUIDANCE = {
    states.IDLE: "Cumprimente o cliente e pergunte o que deseja.",
    states.BROWSING_MENU: "Ajude o cliente a escolher. Use search_menu para ver ids, preços e extras.",
    states.ADDING_ITEM: "Confirme o produto e a quantidade e chame add_to_cart com o product_id correto.",
    states.CHOOSING_ADDONS: "Ofereça os extras disponíveis do produto escolhido.",
    states.CONFIRMING_ITEM: "Confirme o item adicionado e pergunte se quer mais alguma coisa ou finalizar.",
    states.COLLECTING_ADDRESS: "Peça a morada completa para entrega.",
    states.COLLECTING_PAYMENT: "Pergunte a forma de pagamento: dinheiro, cartão, MB Way ou Pix.",
    states.CONFIRMING_ORDER: "Resuma o pedido com o total e peça confirmação. Só chame finalize_order após o 'sim'.",
    states.ORDER_COMPLETED: "Agradeça e informe que o pedido foi recebido.",
}

RULES = (
    "Nunca invente produtos, preços ou extras: use apenas o que aparece no cardápio ou no search_menu.",
    "Nunca informe um total diferente do calculado pelo sistema.",
    "Para alterar o carrinho use somente as ferramentas add_to_cart, remove_from_cart e finalize_order.",
    "Se o cliente disser 'o segundo' ou similar, use a lista de produtos mostrados por último.",
    "Responda sempre em {language}.",
)


def build_system_prompt(context: ConversationContext, state: str) -> str:
    settings = context.settings
    restaurant_name = context.restaurant.name or "o restaurante"

    sections = [
        f"Você é o atendente de WhatsApp do {restaurant_name} e recebe pedidos para entrega.",
        TONE_INSTRUCTIONS.get(settings.tone, TONE_INSTRUCTIONS["friendly"]),
        UPSELL_INSTRUCTIONS.get(settings.upsell_aggressiveness, UPSELL_INSTRUCTIONS["medium"]),
        (
            "Faça no máximo "
            f"{settings.max_additional_questions_before_checkout} perguntas extras antes de seguir para o fechamento."
        ),
    ]
    if settings.greeting_message:
        sections.append(f"Saudação padrão: {settings.greeting_message}")
    if settings.closing_message:
        sections.append(f"Despedida padrão: {settings.closing_message}")

    sections.append("Regras:\n" + "\n".join(f"- {rule.format(language=settings.language)}" for rule in RULES))
    sections.append(f"Estado atual: {states.LABELS.get(state, state)} ({state}). {STATE_GUIDANCE.get(state, '')}")

    sections.append(f"Cardápio (resumo):\n{context.formatted.get('menu', '')}")
    sections.append(f"Carrinho:\n{context.formatted.get('cart', '')}")
    sections.append(f"Cliente:\n{context.formatted.get('customer', '')}")

    last_shown = context.formatted.get("last_shown")
    if last_shown:
        sections.append(f"Produtos mostrados por último:\n{last_shown}")

    extra = (context.agent_config.system_prompt or "").strip() if context.agent_config else ""
    if extra:
        sections.append(f"Instruções do restaurante:\n{extra}")

    return "\n\n".join(section for section in sections if section)
