"""Orquestração de uma mensagem recebida.

Fluxo: registra a mensagem -> mode gate -> contexto -> provedor (com
rodadas de search_menu) -> tools -> FSM -> grava estado, carrinho e
resposta num commit só -> envia a resposta.

O turno inteiro roda sob o lock do par (restaurante, cliente). Entre
instâncias, a coluna ``version`` do conversation_state faz o escritor
atrasado falhar com StaleDataError; o turno é desfeito e refeito.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError
from starlette.concurrency import run_in_threadpool

from comanda.ai.base import ReasoningProvider
from comanda.ai.context import ConversationContext, build_conversation_context
from comanda.ai.prompts import build_system_prompt
from comanda.ai.schema import FINALIZE_ORDER, MUTATION_TOOLS, ChatMessage, ProviderReply, ProviderRequest
from comanda.ai.service import get_provider
from comanda.ai.tools import TOOL_DEFINITIONS, ToolContext, ToolOutcome, execute_tool_calls
from comanda.core.config import AGENT_MAX_LOOKUP_ROUNDS, AGENT_PROVIDER_TIMEOUT_SECONDS, STATE_WRITE_RETRIES
from comanda.core.conversation_locks import ConversationLockService, InMemoryConversationLockService
from comanda.core.database import SessionLocal
from comanda.core.errors import PersistenceError, ProviderError, RestaurantNotFoundError
from comanda.core.metrics import InMemoryPipelineMetrics, pipeline_metrics
from comanda.core.request_context import set_request_context
from comanda.fsm import states
from comanda.fsm.engine import advance, capture_metadata, resolve_transition, settle, validate_metadata
from comanda.models.agent_config import AgentConfig
from comanda.models.restaurant import Restaurant
from comanda.services.carts import load_cart_aggregate
from comanda.services.conversation_mode import is_automation_enabled
from comanda.services.conversation_state import remember_shown_products
from comanda.services.customer_insights import update_customer_insights_after_order
from comanda.services.messages import is_duplicate_delivery, record_inbound, record_outbound
from comanda.whatsapp.base import MessageChannel
from comanda.whatsapp.service import get_channel

logger = logging.getLogger(__name__)

APOLOGY_REPLY = "Desculpe, tive um problema para responder agora. Pode enviar a mensagem de novo em instantes?"
FAILURE_REPLY = "Desculpe, não consegui registrar essa alteração. Tente novamente em instantes."
EMPTY_REPLY = "Posso ajudar com o cardápio ou com o seu pedido. O que vai querer?"

STATUS_OK = "ok"
STATUS_MANUAL = "manual"
STATUS_DUPLICATE = "duplicate"
STATUS_RESTAURANT_NOT_FOUND = "restaurant_not_found"
STATUS_PROVIDER_ERROR = "provider_error"
STATUS_PERSISTENCE_ERROR = "persistence_error"


@dataclass
class PipelineResult:
    status: str
    reply: str | None = None
    state: str | None = None
    order_id: int | None = None
    inbound_message_id: int | None = None
    outcomes: list[ToolOutcome] = field(default_factory=list)


@dataclass
class _Intake:
    status: str
    inbound_message_id: int | None = None
    restaurant_phone: str | None = None


@dataclass
class _TurnResult:
    reply: str
    state: str
    outcomes: list[ToolOutcome]
    order_id: int | None = None
    order_details: dict[str, Any] = field(default_factory=dict)


class ConversationPipeline:
    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        provider_factory: Callable[[AgentConfig | None], ReasoningProvider] = get_provider,
        channel: MessageChannel | None = None,
        locks: ConversationLockService | None = None,
        metrics: InMemoryPipelineMetrics = pipeline_metrics,
    ) -> None:
        self.session_factory = session_factory
        self.provider_factory = provider_factory
        self.channel = channel
        self.locks = locks or InMemoryConversationLockService()
        self.metrics = metrics

    async def handle_inbound(
        self,
        restaurant_id: int,
        customer_phone: str,
        message_text: str,
        message_id: str | None = None,
        contact_name: str | None = None,
    ) -> PipelineResult:
        started = time.perf_counter()
        set_request_context(restaurant_id=str(restaurant_id), customer_phone=customer_phone)
        result: PipelineResult | None = None
        try:
            async with self.locks.hold(restaurant_id=restaurant_id, customer_phone=customer_phone):
                result = await self._process(restaurant_id, customer_phone, message_text or "", message_id, contact_name)
            return result
        finally:
            duration_ms = round((time.perf_counter() - started) * 1000, 2)
            outcome = result.status if result else "error"
            self.metrics.observe(outcome, duration_ms, str(restaurant_id))
            logger.info(
                "mensagem processada",
                extra={
                    "outcome": outcome,
                    "state": result.state if result else None,
                    "duration_ms": duration_ms,
                },
            )

    # ------------------------------------------------------------------

    async def _process(
        self,
        restaurant_id: int,
        customer_phone: str,
        message_text: str,
        message_id: str | None,
        contact_name: str | None,
    ) -> PipelineResult:
        db = self.session_factory()
        try:
            try:
                intake = await run_in_threadpool(
                    self._intake, db, restaurant_id, customer_phone, message_text, message_id
                )
            except RestaurantNotFoundError:
                logger.error("Restaurante %s não encontrado; mensagem descartada", restaurant_id)
                return PipelineResult(status=STATUS_RESTAURANT_NOT_FOUND)
            except SQLAlchemyError:
                await run_in_threadpool(db.rollback)
                logger.exception("Falha ao registrar mensagem recebida")
                await self._send(restaurant_id, customer_phone, FAILURE_REPLY)
                return PipelineResult(status=STATUS_PERSISTENCE_ERROR, reply=FAILURE_REPLY)

            if intake.status != STATUS_OK:
                return PipelineResult(status=intake.status, inbound_message_id=intake.inbound_message_id)

            try:
                turn = await self._run_turn_with_retries(
                    db,
                    restaurant_id,
                    customer_phone,
                    message_text,
                    intake,
                    contact_name,
                )
            except ProviderError as exc:
                await run_in_threadpool(db.rollback)
                logger.warning("Provedor falhou (timeout=%s): %s", exc.timeout, exc.detail)
                await run_in_threadpool(self._record_apology, db, restaurant_id, customer_phone, intake)
                await self._send(restaurant_id, customer_phone, APOLOGY_REPLY)
                return PipelineResult(
                    status=STATUS_PROVIDER_ERROR,
                    reply=APOLOGY_REPLY,
                    inbound_message_id=intake.inbound_message_id,
                )
            except PersistenceError as exc:
                await run_in_threadpool(db.rollback)
                logger.exception("Falha de persistência no turno (%s)", exc.operation)
                await self._send(restaurant_id, customer_phone, FAILURE_REPLY)
                return PipelineResult(
                    status=STATUS_PERSISTENCE_ERROR,
                    reply=FAILURE_REPLY,
                    inbound_message_id=intake.inbound_message_id,
                )
            except RestaurantNotFoundError:
                await run_in_threadpool(db.rollback)
                logger.error("Restaurante %s removido durante o processamento", restaurant_id)
                return PipelineResult(status=STATUS_RESTAURANT_NOT_FOUND)

            if turn.order_id is not None:
                await run_in_threadpool(self._update_insights, db, customer_phone, turn)

            await self._send(restaurant_id, customer_phone, turn.reply)
            return PipelineResult(
                status=STATUS_OK,
                reply=turn.reply,
                state=turn.state,
                order_id=turn.order_id,
                inbound_message_id=intake.inbound_message_id,
                outcomes=turn.outcomes,
            )
        finally:
            await run_in_threadpool(db.close)

    def _intake(
        self,
        db: Session,
        restaurant_id: int,
        customer_phone: str,
        message_text: str,
        message_id: str | None,
    ) -> _Intake:
        restaurant = db.query(Restaurant).filter(Restaurant.id == restaurant_id).first()
        if restaurant is None:
            raise RestaurantNotFoundError(restaurant_id)

        if is_duplicate_delivery(db, message_id):
            logger.info("Mensagem duplicada ignorada: %s", message_id)
            return _Intake(status=STATUS_DUPLICATE)

        try:
            inbound = record_inbound(
                db,
                restaurant_id=restaurant_id,
                customer_phone=customer_phone,
                body=message_text,
                restaurant_phone=restaurant.phone,
                message_id=message_id,
            )
            db.commit()
        except IntegrityError:
            # outra entrega com o mesmo id chegou primeiro
            db.rollback()
            logger.info("Mensagem duplicada ignorada: %s", message_id)
            return _Intake(status=STATUS_DUPLICATE)

        if not is_automation_enabled(db, restaurant_id, customer_phone):
            logger.info("Conversa em modo manual; sem resposta automática")
            return _Intake(status=STATUS_MANUAL, inbound_message_id=inbound.id)

        return _Intake(status=STATUS_OK, inbound_message_id=inbound.id, restaurant_phone=restaurant.phone)

    async def _run_turn_with_retries(
        self,
        db: Session,
        restaurant_id: int,
        customer_phone: str,
        message_text: str,
        intake: _Intake,
        contact_name: str | None,
    ) -> _TurnResult:
        attempt = 0
        while True:
            try:
                return await self._run_turn(db, restaurant_id, customer_phone, message_text, intake, contact_name)
            except StaleDataError as exc:
                await run_in_threadpool(db.rollback)
                if attempt >= STATE_WRITE_RETRIES:
                    raise PersistenceError("conversation_state", "versão desatualizada após retentativas") from exc
                attempt += 1
                logger.warning("Estado alterado por outro processo; refazendo o turno (tentativa %s)", attempt)

    async def _run_turn(
        self,
        db: Session,
        restaurant_id: int,
        customer_phone: str,
        message_text: str,
        intake: _Intake,
        contact_name: str | None,
    ) -> _TurnResult:
        context = await run_in_threadpool(
            build_conversation_context,
            db,
            restaurant_id,
            customer_phone,
            message_text,
            intake.inbound_message_id,
        )
        if contact_name and context.customer is not None and not context.customer.name:
            context.customer.name = contact_name

        current = states.coerce_state(context.conversation.state)
        settled = settle(current)
        metadata = dict(context.conversation.state_metadata or {})
        if current in states.TRANSIENT_STATES:
            # pedido anterior encerrado: começa do zero
            metadata = {}
        metadata = capture_metadata(settled, message_text, metadata)

        request = ProviderRequest(
            system_prompt=build_system_prompt(context, settled),
            messages=[ChatMessage(role=entry.role, content=entry.content) for entry in context.history]
            + [ChatMessage(role="user", content=message_text)],
            tools=TOOL_DEFINITIONS,
            hints={
                "state": settled,
                "next_state": advance(current, message_text, context.has_cart),
                "cart_items": context.cart.item_count,
                "metadata": metadata,
                "last_shown": context.last_shown,
                "lookup_rounds": 0,
            },
        )

        provider = self.provider_factory(context.agent_config)
        reply, shown = await self._complete_with_lookups(provider, request, context)

        return await run_in_threadpool(
            self._apply_turn,
            db,
            context,
            intake,
            current,
            message_text,
            metadata,
            reply,
            shown,
        )

    async def _complete_with_lookups(
        self,
        provider: ReasoningProvider,
        request: ProviderRequest,
        context: ConversationContext,
    ) -> tuple[ProviderReply, list[dict[str, Any]] | None]:
        reply = await self._complete(provider, request)
        shown: list[dict[str, Any]] | None = None
        rounds = 0
        while reply.lookups and rounds < AGENT_MAX_LOOKUP_ROUNDS:
            rounds += 1
            found: dict[int, Any] = {}
            for lookup in reply.lookups:
                for product in context.search_menu(lookup.query):
                    found.setdefault(product.id, product)
            results = context.lookup_payload(list(found.values()))
            shown = [{"id": item["id"], "name": item["name"]} for item in results]
            logger.info("search_menu rodada %s: %s resultados", rounds, len(results))

            hints = dict(request.hints)
            hints["lookup_rounds"] = rounds
            request = request.model_copy(update={"lookup_results": results, "hints": hints})
            reply = await self._complete(provider, request)
        return reply, shown

    async def _complete(self, provider: ReasoningProvider, request: ProviderRequest) -> ProviderReply:
        name = getattr(provider, "name", provider.__class__.__name__)
        try:
            return await asyncio.wait_for(provider.complete(request), timeout=AGENT_PROVIDER_TIMEOUT_SECONDS)
        except ProviderError:
            raise
        except asyncio.TimeoutError as exc:
            raise ProviderError(name, "timeout", timeout=True) from exc
        except Exception as exc:
            raise ProviderError(name, str(exc)) from exc

    def _apply_turn(
        self,
        db: Session,
        context: ConversationContext,
        intake: _Intake,
        current: str,
        message_text: str,
        metadata: dict[str, Any],
        reply: ProviderReply,
        shown: list[dict[str, Any]] | None,
    ) -> _TurnResult:
        conversation = context.conversation
        restaurant = context.restaurant
        customer_phone = conversation.user_phone

        tool_ctx = ToolContext(
            db=db,
            restaurant=restaurant,
            customer_phone=customer_phone,
            conversation=conversation,
            metadata=metadata,
        )
        try:
            outcomes = execute_tool_calls(tool_ctx, reply.tool_calls)

            has_cart = context.has_cart
            if any(outcome.ok and outcome.name in MUTATION_TOOLS for outcome in outcomes):
                has_cart = not load_cart_aggregate(db, restaurant.id, customer_phone).is_empty

            proposed = advance(current, message_text, has_cart)
            new_state = resolve_transition(current, proposed, outcomes)

            failure = next((outcome for outcome in outcomes if not outcome.ok and outcome.message), None)
            if failure is not None:
                tool_ctx.metadata["last_error"] = failure.message
            else:
                tool_ctx.metadata.pop("last_error", None)

            cleaned, missing = validate_metadata(new_state, tool_ctx.metadata)
            if missing:
                logger.info("Metadata incompleto ao entrar em %s: faltando %s", new_state, ", ".join(missing))

            conversation.state = new_state
            conversation.state_metadata = cleaned
            # força o UPDATE (e o teste de versão) mesmo sem mudança de valores
            flag_modified(conversation, "state")
            if new_state != states.ORDER_COMPLETED and conversation.cart_id is None and has_cart:
                conversation.cart_id = context.cart.cart_id
            if shown is not None:
                remember_shown_products(conversation, shown)

            reply_text = self._compose_reply(context, reply, outcomes)
            record_outbound(
                db,
                restaurant_id=restaurant.id,
                customer_phone=customer_phone,
                body=reply_text,
                restaurant_phone=intake.restaurant_phone,
            )
            db.commit()
        except StaleDataError:
            raise
        except SQLAlchemyError as exc:
            raise PersistenceError("apply_turn", str(exc)) from exc

        finalized = next(
            (outcome for outcome in outcomes if outcome.ok and outcome.name == FINALIZE_ORDER),
            None,
        )
        logger.info("Transição %s -> %s", current, new_state, extra={"state": new_state})
        return _TurnResult(
            reply=reply_text,
            state=new_state,
            outcomes=outcomes,
            order_id=finalized.order_id if finalized else None,
            order_details=finalized.details if finalized else {},
        )

    def _compose_reply(
        self,
        context: ConversationContext,
        reply: ProviderReply,
        outcomes: list[ToolOutcome],
    ) -> str:
        finalized = next((outcome for outcome in outcomes if outcome.ok and outcome.name == FINALIZE_ORDER), None)
        if finalized is not None:
            # total sempre o calculado pelo sistema
            closing = context.settings.closing_message
            return f"{finalized.message} {closing}" if closing else finalized.message

        failure = next((outcome for outcome in outcomes if not outcome.ok and outcome.message), None)
        if failure is not None:
            return failure.message

        text = (reply.reply_text or "").strip()
        if text:
            return text
        messages = [outcome.message for outcome in outcomes if outcome.ok and outcome.message]
        if messages:
            return " ".join(messages)
        return EMPTY_REPLY

    def _record_apology(self, db: Session, restaurant_id: int, customer_phone: str, intake: _Intake) -> None:
        try:
            record_outbound(
                db,
                restaurant_id=restaurant_id,
                customer_phone=customer_phone,
                body=APOLOGY_REPLY,
                restaurant_phone=intake.restaurant_phone,
            )
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Falha ao registrar resposta de desculpas")

    def _update_insights(self, db: Session, customer_phone: str, turn: _TurnResult) -> None:
        # fora da transação do pedido: falha aqui não desfaz o pedido
        try:
            update_customer_insights_after_order(
                db,
                phone=customer_phone,
                order_id=turn.order_id,
                total_cents=int(turn.order_details.get("total_cents") or 0),
                items=turn.order_details.get("items") or [],
                status="created",
            )
            db.commit()
        except (SQLAlchemyError, ValueError):
            db.rollback()
            logger.exception("Falha ao atualizar insights do cliente (order_id=%s)", turn.order_id)

    async def _send(self, restaurant_id: int, customer_phone: str, text: str) -> None:
        channel = self.channel or get_channel()
        try:
            await channel.send(restaurant_id, customer_phone, text)
        except Exception:
            logger.exception("Falha ao entregar resposta ao cliente")
