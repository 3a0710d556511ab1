import logging
from google.cloud import firestore

logger = logging.getLogger(__name__)


class FirestoreAnimalCatalog:
    """Known animals, read from the 'animals' collection (field: commonName)."""

    def __init__(self, db, collection='animals'):
        self.db = db
        self.collection = collection

    def list_all_animal_names(self):
        names = []
        seen = set()
        for doc in self.db.collection(self.collection).stream():
            name = (doc.to_dict() or {}).get('commonName')
            if not name or name.lower() in seen:
                continue
            seen.add(name.lower())
            names.append(name)
        logger.info(f"Loaded {len(names)} animal names from catalog.")
        return names


class FirestoreMasteredAnimals:
    """Animals a user has already discovered, from the 'userDiscoveries' collection."""

    def __init__(self, db, collection='userDiscoveries'):
        self.db = db
        self.collection = collection

    def mastered_animals(self, user_id):
        query = self.db.collection(self.collection).where(filter=firestore.FieldFilter('userId', '==', user_id))
        return {
            (doc.to_dict() or {}).get('animalName', '').lower()
            for doc in query.stream()
            if (doc.to_dict() or {}).get('animalName')
        }
