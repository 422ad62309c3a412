"""
CrudKit — Route Registrars
============================

Route Inventory (per resource, under the configured prefix):
    crud.py:    GET    /api/{collection}                 (list)
                GET    /api/{collection}/{id}            (get)
                POST   /api/{collection}                 (create)
                PUT    /api/{collection}/{id}            (update)
                DELETE /api/{collection}/{id}            (delete)
    nested.py:  GET    /api/{ref}/{ref_id}/{collection}  (children of a parent)
    health.py:  GET    /health                           (database probe)
"""
