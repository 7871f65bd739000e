from helpdesk.models.directory import Company, Department, TargetSystem
from helpdesk.models.user import User, UserPrefs, UserSession
from helpdesk.models.ticket import Ticket, TicketAttachment, TicketMessage
from helpdesk.models.conversation import Conversation, ConversationMessage
from helpdesk.models.meeting import Meeting, MeetingAttendee

__all__ = [
    "Company",
    "Department",
    "TargetSystem",
    "User",
    "UserPrefs",
    "UserSession",
    "Ticket",
    "TicketMessage",
    "TicketAttachment",
    "Conversation",
    "ConversationMessage",
    "Meeting",
    "MeetingAttendee",
]
