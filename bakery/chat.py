# bakery/chat.py
"""Order chat and direct messages.

Messages are append-only rows. Delivery to clients is a server-sent event
stream that re-reads the table past the client's last seen id, so a client
that reconnects with its cursor never misses a message (it may see one
twice if it reconnects with an older cursor).
"""
import json
import time

from flask import current_app
from sqlalchemy import and_, or_

from .errors import ForbiddenError, NotFoundError, ValidationError
from .models import Chat, DirectMessage, Order, User, db
from .validation import parse_id

MAX_MESSAGE_LENGTH = 2000


def _clean_text(text):
    if not isinstance(text, str) or not text.strip():
        raise ValidationError('message is required')
    text = text.strip()
    if len(text) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f'message must be at most {MAX_MESSAGE_LENGTH} characters')
    return text


def _participant_order(order_id, principal):
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError('Order not found')
    if principal.id not in order.participant_ids():
        raise ForbiddenError('Only the customer and assigned bakers can use this chat')
    return order


def post_message(principal, order_id, text):
    text = _clean_text(text)
    order = _participant_order(order_id, principal)
    chat = Chat(order_id=order.id, sender_id=principal.id, message=text)
    db.session.add(chat)
    db.session.commit()
    return chat


def list_messages(principal, order_id, after_id=None):
    _participant_order(order_id, principal)
    return _messages_after(order_id, after_id)


def _messages_after(order_id, after_id):
    query = Chat.query.filter(Chat.order_id == order_id)
    if after_id:
        query = query.filter(Chat.id > after_id)
    return query.order_by(Chat.timestamp, Chat.id).all()


def mark_read(principal, message_ids):
    """Mark order messages read for a recipient; returns how many changed."""
    if not isinstance(message_ids, list) or not message_ids:
        raise ValidationError('chatIds are required')
    ids = [parse_id(raw, 'chatIds') for raw in message_ids]
    chats = Chat.query.filter(Chat.id.in_(ids)).all()
    changed = 0
    for chat in chats:
        order = db.session.get(Order, chat.order_id)
        if chat.sender_id == principal.id or principal.id not in order.participant_ids():
            continue
        if not chat.is_read:
            chat.is_read = True
            changed += 1
    db.session.commit()
    return changed


def post_direct_message(principal, receiver_id, text):
    text = _clean_text(text)
    receiver = db.session.get(User, receiver_id)
    if receiver is None:
        raise NotFoundError('Receiver not found')
    if receiver.id == principal.id:
        raise ValidationError('Cannot message yourself')
    message = DirectMessage(sender_id=principal.id, receiver_id=receiver.id, message=text)
    db.session.add(message)
    db.session.commit()
    return message


def list_direct_messages(principal, other_user_id):
    if db.session.get(User, other_user_id) is None:
        raise NotFoundError('User not found')
    conversation = or_(
        and_(DirectMessage.sender_id == principal.id, DirectMessage.receiver_id == other_user_id),
        and_(DirectMessage.sender_id == other_user_id, DirectMessage.receiver_id == principal.id),
    )
    messages = (DirectMessage.query.filter(conversation)
                .order_by(DirectMessage.timestamp, DirectMessage.id).all())
    for message in messages:
        if message.receiver_id == principal.id and not message.is_read:
            message.is_read = True
    db.session.commit()
    return messages


def format_event(chat):
    return f"id: {chat.id}\nevent: chat\ndata: {json.dumps(chat.to_dict())}\n\n"


def stream_messages(principal, order_id, after_id=None):
    """Yield server-sent events for new messages on an order.

    Polls the database every ``CHAT_STREAM_POLL_INTERVAL`` seconds and ends
    after ``CHAT_STREAM_TIMEOUT`` seconds; the client reconnects with the
    last event id it saw.
    """
    _participant_order(order_id, principal)
    interval = current_app.config['CHAT_STREAM_POLL_INTERVAL']
    deadline = time.monotonic() + current_app.config['CHAT_STREAM_TIMEOUT']
    cursor = after_id or 0

    def generate():
        nonlocal cursor
        yield f"retry: {int(interval * 1000)}\n\n"
        while True:
            for chat in _messages_after(order_id, cursor):
                cursor = max(cursor, chat.id)
                yield format_event(chat)
            # end this read so the next poll sees rows committed by other requests
            db.session.rollback()
            if time.monotonic() >= deadline:
                return
            yield ": keep-alive\n\n"
            time.sleep(interval)

    return generate()
