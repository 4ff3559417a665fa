from django.urls import path
from . import views

app_name = "chat"

urlpatterns = [
    # Chats
    path("", views.chats, name="chats"),
    path("<uuid:chat_id>/", views.chat_detail, name="chat_detail"),
    path("<uuid:chat_id>/title/", views.chat_title, name="chat_title"),

    # Messages
    path("<uuid:chat_id>/messages/", views.messages, name="messages"),
    path("<uuid:chat_id>/messages/<int:message_id>/context/", views.message_context, name="message_context"),

    # Streaming
    path("<uuid:chat_id>/stream/", views.stream_message, name="stream"),
    path("<uuid:chat_id>/join/", views.join_chat, name="join"),
    path("<uuid:chat_id>/events/", views.events, name="events"),
]
