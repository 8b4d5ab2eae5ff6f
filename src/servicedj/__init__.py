# ServiceDJ: block playlist generator for restaurant service windows
# Package: servicedj

__version__ = "1.0.0-dev"
__author__ = "ServiceDJ Contributors"
__description__ = "Time-boxed Lunch/Dinner/Late playlist generation with rotation rules"

# Module structure:
#   - servicedj.generate : Candidate filtering, scoring, selection, energy curve
#   - servicedj.schedule : Daily/weekly block scheduling
#   - servicedj.catalog  : Track catalog import
#   - servicedj.export   : CSV/M3U export and export history
#   - servicedj.sink     : Remote playlist sink (streaming service)
#   - servicedj.config   : Configuration management
#   - servicedj.db       : SQLite persistence
