# FILE: spotitnow-backend/api/notifications.py

import logging
from firebase_admin import messaging


def send_notification(db, user_id, title, body, data=None):
    """
    Sends a push notification to a specific user.

    Args:
        db: Firestore client holding the users collection.
        user_id (str): The ID of the user to send the notification to.
        title (str): The title of the notification.
        body (str): The body/message of the notification.
        data (dict, optional): A dictionary of custom data to send with the message.

    Returns:
        bool: True if a message was handed to FCM.
    """
    try:
        user_doc = db.collection('users').document(user_id).get()

        if not user_doc.exists:
            logging.warning(f"Attempted to send notification to non-existent user: {user_id}")
            return False

        fcm_token = user_doc.to_dict().get('fcmToken')
        if not fcm_token:
            logging.info(f"User {user_id} does not have an FCM token. Skipping notification.")
            return False

        # Ensure all data values are strings, as required by FCM
        safe_data = {k: str(v) for k, v in data.items()} if data else {}

        # Add title and body to the data payload so the app can always read it
        safe_data['title'] = title
        safe_data['body'] = body

        message = messaging.Message(
            data=safe_data,
            token=fcm_token,
            android=messaging.AndroidConfig(priority="high"),
        )

        response = messaging.send(message)
        logging.info(f"Successfully sent notification to user {user_id}. Response: {response}")
        return True

    except Exception as e:
        logging.error(f"Failed to send notification to user {user_id}. Error: {e}", exc_info=True)
        return False


def notify_challenge_transitions(db, user_id, transitions):
    """One notification per section that was completed by the sighting. Returns how many were sent."""
    sent = 0
    for transition in transitions:
        if not transition.justCompleted:
            continue
        body = f"You earned {transition.xpAwarded} XP."
        if transition.level and transition.level.leveledUp:
            body += f" You reached level {transition.level.level}: {transition.level.title}!"
        data = {
            'type': 'challenge_completed',
            'kind': transition.kind,
            'regionKey': transition.regionKey,
            'xpAwarded': transition.xpAwarded,
        }
        if send_notification(db, user_id, f"{transition.kind.capitalize()} challenge complete!", body, data):
            sent += 1
    return sent
